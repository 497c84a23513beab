from salonpass.services.subscription import SubscriptionOrchestrator, get_orchestrator


async def get_subscription_orchestrator() -> SubscriptionOrchestrator:
    """Orchestrator dependency; tests override it with one bound to their database"""
    return get_orchestrator()
