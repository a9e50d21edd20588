import uuid

import pytest

from learninghub.core.security import generate_totp
from learninghub.schemas.enums import AssuranceLevel, FactorStatus
from learninghub.services.identity import (
    ChallengeNotFound,
    FactorNotFound,
    InvalidCredentials,
    ProviderInvalidCode,
    SessionInvalid,
)
from tests.fixtures.users import DEFAULT_PASSWORD


@pytest.mark.anyio
async def test_sign_in_opens_base_session(create_user, provider):
    user = await create_user()
    token, session = await provider.sign_in_with_password(user.email.upper(), DEFAULT_PASSWORD)

    assert session.user_id == user.id
    assert session.aal == AssuranceLevel.AAL1
    assert (await provider.get_session(token)).session_id == session.session_id


@pytest.mark.anyio
async def test_sign_in_rejects_bad_password(create_user, provider):
    user = await create_user()
    with pytest.raises(InvalidCredentials):
        await provider.sign_in_with_password(user.email, "wrong-password")


@pytest.mark.anyio
async def test_sign_out_scopes(create_user, provider):
    user = await create_user()
    t1, s1 = await provider.sign_in_with_password(user.email, DEFAULT_PASSWORD)
    t2, s2 = await provider.sign_in_with_password(user.email, DEFAULT_PASSWORD)
    t3, _ = await provider.sign_in_with_password(user.email, DEFAULT_PASSWORD)

    await provider.sign_out(s1, scope="others")
    assert (await provider.get_session(t1)).session_id == s1.session_id
    for token in (t2, t3):
        with pytest.raises(SessionInvalid):
            await provider.get_session(token)

    await provider.sign_out(s1, scope="local")
    with pytest.raises(SessionInvalid):
        await provider.get_session(t1)

    with pytest.raises(ValueError):
        await provider.sign_out(s2, scope="everything")


@pytest.mark.anyio
async def test_enroll_challenge_verify(create_user, provider):
    user = await create_user()
    _, session = await provider.sign_in_with_password(user.email, DEFAULT_PASSWORD)

    enrollment = await provider.enroll_totp(user.id, issuer="HIPAA Learning Hub", friendly_name="HIPAA-1")
    assert str(enrollment.factor_id) in repr(enrollment)
    assert enrollment.secret not in repr(enrollment)

    challenge = await provider.challenge(enrollment.factor_id)
    with pytest.raises(ProviderInvalidCode):
        await provider.verify(session, factor_id=enrollment.factor_id, challenge_id=challenge.id, code="000000")

    # challenge stays open after a wrong code
    assert (await provider.get_challenge(challenge.id)).factor_id == enrollment.factor_id

    code = generate_totp(enrollment.secret).now()
    await provider.verify(session, factor_id=enrollment.factor_id, challenge_id=challenge.id, code=code)

    [factor] = await provider.list_factors(user.id)
    assert factor.status == FactorStatus.VERIFIED
    assert await provider.get_assurance_level(session) == AssuranceLevel.AAL2
    with pytest.raises(ChallengeNotFound):
        await provider.get_challenge(challenge.id)


@pytest.mark.anyio
async def test_unenroll_unknown_factor(provider):
    with pytest.raises(FactorNotFound):
        await provider.unenroll(uuid.uuid4())
