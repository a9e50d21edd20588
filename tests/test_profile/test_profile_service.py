import pytest

from learninghub.schemas.enums import MfaMethod, UserRole
from learninghub.services.profile_service import get_mfa_profile, record_mfa_method, route_for_role


@pytest.mark.parametrize(
    "role, route",
    [
        (UserRole.PLATFORM_OWNER, "/platform"),
        (UserRole.ORG_ADMIN, "/admin"),
        (UserRole.WORKFORCE_USER, "/dashboard"),
        ("auditor", "/dashboard"),
        (None, "/dashboard"),
    ],
)
def test_route_for_role(role, route):
    assert route_for_role(role) == route


@pytest.mark.anyio
async def test_profile_reflects_recorded_method(create_user, db_session):
    user = await create_user()
    profile = get_mfa_profile(user)
    assert profile.method is None
    assert profile.uses_email is False

    await record_mfa_method(db_session, user, MfaMethod.EMAIL)
    await db_session.refresh(user)
    profile = get_mfa_profile(user)
    assert profile.method == MfaMethod.EMAIL
    assert profile.enabled is True
    assert profile.uses_email is True
    assert profile.email == user.email
