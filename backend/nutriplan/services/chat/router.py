"""Intent routing for chat turns that do not replace a meal."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Awaitable, Callable, Dict

from nutriplan.db.schema import ChatTurnResult, IntentKind

if TYPE_CHECKING:
    from nutriplan.services.chat.orchestrator import ConversationOrchestrator, TurnContext

Handler = Callable[["ConversationOrchestrator", "TurnContext"], Awaitable[ChatTurnResult]]

_HANDLER_PATHS: Dict[IntentKind, str] = {
    IntentKind.MODIFICATION: "nutriplan.services.chat.handlers:handle_modification_request",
    IntentKind.RECIPE: "nutriplan.services.chat.handlers:handle_recipe_request",
}
_DEFAULT_HANDLER = "nutriplan.services.chat.handlers:handle_general_chat"


def _resolve_handler(path: str) -> Handler:
    module_name, func_name = path.split(":", 1)
    module = import_module(module_name)
    return getattr(module, func_name)


def get_handler(intent: IntentKind) -> Handler:
    """Return the coroutine handler for the provided intent."""
    path = _HANDLER_PATHS.get(intent, _DEFAULT_HANDLER)
    return _resolve_handler(path)


async def dispatch_intent(
    intent: IntentKind,
    orchestrator: ConversationOrchestrator,
    ctx: TurnContext,
) -> ChatTurnResult:
    """Dispatch to the handler mapped to the detected intent."""
    handler = get_handler(intent)
    return await handler(orchestrator, ctx)
