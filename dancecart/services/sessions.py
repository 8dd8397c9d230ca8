from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

from dancecart.core.config import Settings
from dancecart.integrations.backend import GraphQLBasketBackend, GraphQLCheckoutBackend
from dancecart.integrations.graphql_client import GraphQLClient
from dancecart.integrations.payments import BackendPaymentGateway
from dancecart.integrations.stripe_gateway import StripeGateway
from dancecart.integrations.token_store import TokenStore
from dancecart.services.basket import BasketService
from dancecart.services.checkout import CheckoutStateMachine

log = structlog.get_logger(__name__)


@dataclass
class SessionContext:
    """Everything live for one customer session: one basket, at most one checkout."""

    session_id: str
    tokens: TokenStore
    basket: BasketService
    checkout: CheckoutStateMachine


SessionFactory = Callable[[str], SessionContext]


def graphql_session_factory(settings: Settings, stripe_gateway: Optional[StripeGateway] = None) -> SessionFactory:
    stripe_gateway = stripe_gateway or StripeGateway(settings.STRIPE_SECRET_KEY)

    def build(session_id: str) -> SessionContext:
        tokens = TokenStore()
        client = GraphQLClient(
            url=settings.GRAPHQL_URL,
            token_store=tokens,
            timeout=settings.GRAPHQL_TIMEOUT_SECONDS,
        )
        return SessionContext(
            session_id=session_id,
            tokens=tokens,
            basket=BasketService(GraphQLBasketBackend(client), session_id=session_id),
            checkout=CheckoutStateMachine(
                BackendPaymentGateway(GraphQLCheckoutBackend(client), stripe_gateway)
            ),
        )

    return build


class SessionRegistry:
    def __init__(self, factory: SessionFactory):
        self._factory = factory
        self._sessions: Dict[str, SessionContext] = {}

    def get(self, session_id: str) -> SessionContext:
        ctx = self._sessions.get(session_id)
        if ctx is None:
            ctx = self._factory(session_id)
            self._sessions[session_id] = ctx
            log.info("session_created", session_id=session_id)
        return ctx

    def drop(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            log.info("session_dropped", session_id=session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
