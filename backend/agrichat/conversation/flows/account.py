# /agrichat/conversation/flows/account.py

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from rapidfuzz import fuzz, process

from agrichat.config import strings
from agrichat.config.catalogue import COUNTRIES
from agrichat.config.settings import settings
from agrichat.conversation.context import Turn, brand
from agrichat.conversation.machine import machine
from agrichat.models.inbound import EventKind
from agrichat.models.session import Flow, Session, SessionUser, now_ms
from agrichat.services.marketplace import BusinessError
from agrichat.services.security_service import SecurityService

# Identity: signup, login, OTP verification, manual and idle locking,
# unlocking, logout and the silent phone-number hydration that runs before
# routing for unbound sessions.

logger = logging.getLogger(__name__)

COUNTRY_MATCH_THRESHOLD = 70


def _session_user(record: dict, membership: Optional[dict]) -> SessionUser:
    membership = membership or {}
    return SessionUser(
        id=str(record["id"]),
        email=record.get("email"),
        org_id=membership.get("organization_id"),
        account_type=membership.get("account_type"),
        name=record.get("fullname"),
    )


async def issue_otp(turn: Turn, user: SessionUser, follow_up: str = strings.REPLY_WITH_CODE):
    """Stores a fresh verification code on the user and moves to the OTP step."""
    otp = SecurityService.generate_otp()
    expires = datetime.now(timezone.utc) + timedelta(seconds=settings.otp_ttl_seconds)
    await turn.facade.update_user(user.id, {
        "email_verification_token": otp,
        "email_verification_expires": expires.isoformat(),
    })
    await turn.guard.reset_otp_attempts(turn.phone)
    await turn.update(flow=Flow.SIGNUP_OTP, data={"otp": otp}, user=user)
    turn.otp(otp)
    turn.text(follow_up)


async def hydrate(turn: Turn) -> bool:
    """
    Binds an existing platform account to an unbound session by phone number.
    Returns True when the account still needs verification and an OTP step
    was started, in which case routing stops for this event.
    """
    try:
        record = await turn.facade.find_user_by_phone(turn.phone_e164)
        if not record:
            return False
        membership = await turn.facade.get_user_membership(str(record["id"]))
        user = _session_user(record, membership)
        if record.get("email_verified"):
            await turn.update(user=user)
            return False
        await issue_otp(turn, user, strings.REPLY_WITH_CODE_VERIFY)
        return True
    except BusinessError as e:
        logger.warning(f"Hydration by phone failed for {turn.phone}: {e}")
        return False


# ---------------- Signup ---------------- #

@machine.command("signup", "sign up")
@machine.choice("menu_signup")
async def start_signup(turn: Turn):
    await turn.reset(Flow.SIGNUP_NAME)
    turn.text(strings.ASK_FULL_NAME.format(brand=brand()))


@machine.prompt(Flow.SIGNUP_NAME)
async def ask_name(turn: Turn):
    turn.text(strings.ASK_NAME_AGAIN)


@machine.on(Flow.SIGNUP_NAME)
async def capture_name(turn: Turn):
    name = turn.event.text.strip()
    if not name:
        await ask_name(turn)
        return
    await turn.update(flow=Flow.SIGNUP_ACCOUNT_TYPE, data={"name": name})
    await ask_account_type(turn)


@machine.prompt(Flow.SIGNUP_ACCOUNT_TYPE)
async def ask_account_type(turn: Turn):
    turn.buttons(strings.ASK_ACCOUNT_TYPE, [("acct_buyer", "Buyer"), ("acct_seller", "Seller")])


async def _set_account_type(turn: Turn, account_type: str):
    business_type = "farmers" if account_type == "seller" else "general"
    await turn.update(flow=Flow.SIGNUP_COUNTRY, data={"accountType": account_type, "businessType": business_type})
    await ask_country(turn)


@machine.choice("acct_buyer", "acct_seller")
async def account_type_choice(turn: Turn):
    await _set_account_type(turn, turn.event.choice_id.split("_", 1)[1])


@machine.on(Flow.SIGNUP_ACCOUNT_TYPE)
async def account_type_text(turn: Turn):
    if turn.event.lower in ("buyer", "seller"):
        await _set_account_type(turn, turn.event.lower)
        return
    turn.text(strings.PICK_ACCOUNT_TYPE)
    await ask_account_type(turn)


@machine.prompt(Flow.SIGNUP_COUNTRY)
async def ask_country(turn: Turn):
    turn.list("Select your country", "Choose one from the list", "Countries",
              [{"id": cid, "title": name} for cid, name in COUNTRIES.items()], section="OECS")


@machine.choice_prefix("country_")
async def country_choice(turn: Turn, suffix: str):
    country = COUNTRIES.get(f"country_{suffix}")
    if not country or turn.flow != Flow.SIGNUP_COUNTRY:
        await turn.menu()
        return
    await finish_signup(turn, country)


@machine.on(Flow.SIGNUP_COUNTRY)
async def country_text(turn: Turn):
    match = process.extractOne(turn.event.text.strip(), list(COUNTRIES.values()), scorer=fuzz.WRatio)
    if not match or match[1] < COUNTRY_MATCH_THRESHOLD:
        await ask_country(turn)
        return
    await finish_signup(turn, match[0])


async def finish_signup(turn: Turn, country: str):
    data = turn.data
    name = data.get("name") or "WhatsApp User"
    account_type = data.get("accountType") or "buyer"
    business_type = data.get("businessType") or ("farmers" if account_type == "seller" else "general")
    phone_e164 = turn.phone_e164
    await turn.update(data={"country": country})

    try:
        record = await turn.facade.create_user({
            "email": f"wa_{turn.phone}@signup.local",
            "password": SecurityService.hash_password(SecurityService.generate_random_password()),
            "fullname": name,
            "individual_account_type": account_type,
            "phone_number": phone_e164,
            "country": country,
        })
        org = await turn.facade.create_organization({
            "name": name,
            "business_name": name,
            "account_type": account_type,
            "business_type": business_type,
            "country": country,
            "phone_number": phone_e164,
            "status": "active",
        })
        await turn.facade.ensure_org_admin(str(record["id"]), str(org["id"]))
        user = SessionUser(
            id=str(record["id"]),
            email=record.get("email"),
            org_id=str(org["id"]),
            account_type=account_type,
            name=name,
        )
        if user.is_seller:
            await turn.update(flow=Flow.SIGNUP_FARMERS_ID, user=user)
            turn.text(strings.ASK_FARMERS_ID)
            return
        await issue_otp(turn, user)
    except BusinessError as e:
        logger.error(f"Signup failed for {turn.phone}: {e}")
        turn.text(strings.SIGNUP_FAILED)
        await turn.reset()
        await turn.menu()


@machine.prompt(Flow.SIGNUP_FARMERS_ID)
async def ask_farmers_id(turn: Turn):
    turn.text(strings.ASK_FARMERS_ID)


@machine.on(Flow.SIGNUP_FARMERS_ID)
async def farmers_id_text(turn: Turn):
    await ask_farmers_id(turn)


@machine.on(Flow.SIGNUP_FARMERS_ID, kind=EventKind.IMAGE)
async def capture_farmers_id(turn: Turn):
    user = turn.user
    if not user or not user.org_id:
        await turn.reset()
        await turn.menu()
        return
    object_path = f"ids/farmers/{user.org_id}/{now_ms()}.jpg"
    stored = await turn.deps.media.store(turn.event.media_id, object_path, bucket="private")
    await turn.facade.update_organization(user.org_id, {"farmers_id": stored})
    await issue_otp(turn, user)


# ---------------- OTP verification ---------------- #

@machine.prompt(Flow.SIGNUP_OTP)
async def ask_otp(turn: Turn):
    turn.text(strings.OTP_FORMAT)


@machine.on(Flow.SIGNUP_OTP)
async def verify_otp(turn: Turn):
    user = turn.user
    if not user:
        await turn.reset()
        await turn.menu()
        return
    if not await turn.guard.register_otp_attempt(turn.phone):
        turn.text(strings.TOO_MANY_ATTEMPTS)
        await turn.reset()
        await turn.menu()
        return
    code = turn.event.text.strip()
    if not SecurityService.is_valid_otp_format(code):
        await ask_otp(turn)
        return
    if not SecurityService.otp_matches(code, turn.data.get("otp")):
        turn.text(strings.OTP_MISMATCH)
        return

    if not await turn.facade.verify_user_email(code):
        turn.text(strings.OTP_EXPIRED)
        await turn.reset()
        await turn.menu()
        return

    await turn.guard.reset_otp_attempts(turn.phone)
    if user.org_id:
        try:
            await turn.facade.update_organization(user.org_id, {"status": "active"})
        except BusinessError as e:
            logger.warning(f"Could not activate organization {user.org_id}: {e}")
    await turn.guard.pair(user.id, turn.phone)
    await turn.guard.touch(user.id)
    await turn.done(strings.VERIFIED.format(brand=brand()))


# ---------------- Login and logout ---------------- #

@machine.command("login")
@machine.choice("menu_login")
async def login(turn: Turn):
    try:
        record = await turn.facade.find_user_by_phone(turn.phone_e164)
        if not record:
            turn.text(strings.NO_ACCOUNT_FOR_NUMBER)
            return
        membership = await turn.facade.get_user_membership(str(record["id"]))
        await turn.guard.clear_logged_out(turn.phone)
        await issue_otp(turn, _session_user(record, membership))
    except BusinessError as e:
        logger.error(f"Login failed for {turn.phone}: {e}")
        turn.text(strings.LOGIN_FAILED)


@machine.choice("menu_logout")
async def logout(turn: Turn):
    if turn.user:
        await turn.guard.unpair(turn.user.id)
        await turn.audit("logout")
    await turn.guard.mark_logged_out(turn.phone)
    await turn.store.clear(turn.phone)
    turn.session = Session()
    turn.text(strings.LOGGED_OUT)


# ---------------- Lock and unlock ---------------- #

@machine.command("lock")
@machine.choice("menu_lock")
async def lock_account(turn: Turn):
    if not turn.user:
        turn.text(strings.LOGIN_OR_SIGNUP_FIRST)
        return
    await turn.guard.lock(turn.user.id)
    await turn.audit("account_locked_manual")
    turn.text(strings.ACCOUNT_NOW_LOCKED)


@machine.command("unlock")
@machine.choice("menu_unlock")
async def start_unlock(turn: Turn):
    if not turn.user:
        turn.text(strings.LOGIN_OR_SIGNUP_FIRST)
        return
    otp = await turn.guard.issue_unlock_otp(turn.user.id, turn.phone)
    turn.otp(otp)
    await turn.audit("otp_sent_unlock")
    await turn.update(flow=Flow.UNLOCK_OTP)
    turn.text(strings.ENTER_UNLOCK_CODE)


@machine.prompt(Flow.UNLOCK_OTP)
async def ask_unlock_code(turn: Turn):
    turn.text(strings.ENTER_UNLOCK_CODE)


@machine.on(Flow.UNLOCK_OTP)
async def verify_unlock(turn: Turn):
    user = turn.user
    if not user:
        await turn.reset()
        await turn.menu()
        return
    code = turn.event.text.strip()
    if not SecurityService.is_valid_otp_format(code):
        turn.text(strings.OTP_FORMAT_SHORT)
        return
    if not await turn.guard.register_unlock_attempt(turn.phone):
        turn.text(strings.TOO_MANY_ATTEMPTS)
        await turn.reset()
        await turn.menu()
        return
    if not await turn.guard.check_unlock_otp(user.id, code):
        turn.text(strings.OTP_MISMATCH)
        return
    await turn.guard.complete_unlock(user.id, turn.phone)
    await turn.audit("account_unlocked")
    await turn.done(strings.ACCOUNT_UNLOCKED)
