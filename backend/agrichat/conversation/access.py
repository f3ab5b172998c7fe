# /agrichat/conversation/access.py

from agrichat.config import strings
from agrichat.conversation.context import Turn
from agrichat.models.session import Flow

# Checks run at the start of account-scoped flows. Each one answers the user
# itself and returns False when the flow must not start.


async def requires_org(turn: Turn) -> bool:
    if turn.user and turn.user.org_id:
        return True
    turn.text(strings.SIGN_UP_TO_CONTINUE)
    await turn.reset(Flow.SIGNUP_NAME)
    await turn.prompt(Flow.SIGNUP_NAME)
    return False


async def requires_seller(turn: Turn, paired: bool = False) -> bool:
    if not await requires_org(turn):
        return False
    if not turn.user.is_seller:
        turn.text(strings.SELLER_ONLY)
        return False
    if paired and not await turn.guard.is_paired(turn.user.id, turn.phone):
        turn.text(strings.VERIFY_TO_CONTINUE)
        return False
    return True


async def requires_buyer(turn: Turn) -> bool:
    if not await requires_org(turn):
        return False
    if turn.user.is_seller:
        turn.text(strings.BUYER_ONLY)
        return False
    return True
