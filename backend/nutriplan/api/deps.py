"""
Request dependencies for services built in the application lifespan.
"""
from fastapi import Request

from nutriplan.services.chat.orchestrator import ConversationOrchestrator
from nutriplan.services.meal_replacement import ReplacementSuggestionEngine
from nutriplan.services.plan_mutation import PlanMutationService


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


def get_engine(request: Request) -> ReplacementSuggestionEngine:
    return request.app.state.engine


def get_mutations(request: Request) -> PlanMutationService:
    return request.app.state.mutations
