"""
Service wiring. Built once at startup and shared by the HTTP routes and the
Telegram bot; tests build their own with fakes.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.agent.memory import ConversationMemory
from app.agent.orchestrator import AgentOrchestrator
from app.agent.payment_flow import PaymentLinkFlow
from app.agent.session_store import DatabaseSessionStore, InMemorySessionStore
from app.agent.tools import WalletTools
from app.core.config import settings
from app.db.session import SessionLocal
from app.mcp.service import McpToolService
from app.services.balance_service import BalanceAggregator
from app.services.payment_link_service import PaymentLinkService
from app.services.transfer_service import TransferService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    chain: object
    provider: object
    balances: BalanceAggregator
    transfers: TransferService
    links: PaymentLinkService
    tools: WalletTools
    sessions: object
    memory: ConversationMemory
    flow: PaymentLinkFlow
    orchestrator: AgentOrchestrator
    mcp: McpToolService
    llm_agent: Optional[object] = None
    agent_mode: str = "rules"

    @property
    def agent(self):
        """The agent answering free text: Groq-backed in llm mode, rule-based otherwise."""
        if self.agent_mode == "llm" and self.llm_agent is not None:
            return self.llm_agent
        return self.orchestrator


def build_services(
    session_factory=SessionLocal,
    chain=None,
    provider=None,
    groq=None,
    id_generator=None,
    session_backend: Optional[str] = None,
    agent_mode: Optional[str] = None,
) -> Services:
    if chain is None:
        from app.services.chain_client import get_chain_client
        chain = get_chain_client()
    if provider is None:
        from app.services.wallet_provider import get_wallet_provider
        provider = get_wallet_provider()

    balances = BalanceAggregator(chain)
    transfers = TransferService(balances, provider, settings.EXPLORER_URL)
    link_kwargs = {"id_generator": id_generator} if id_generator else {}
    links = PaymentLinkService(settings.LINK_BASE_URL, **link_kwargs)
    tools = WalletTools(session_factory, balances, transfers, links, provider=provider, chain=chain)

    backend = (session_backend or settings.SESSION_BACKEND).lower()
    if backend == "database":
        sessions = DatabaseSessionStore(session_factory, ttl_seconds=settings.SESSION_TTL_SECONDS)
    else:
        sessions = InMemorySessionStore(ttl_seconds=settings.SESSION_TTL_SECONDS)

    memory = ConversationMemory(max_entries=settings.MEMORY_MAX_ENTRIES)
    flow = PaymentLinkFlow(sessions, tools.create_payment_link)
    orchestrator = AgentOrchestrator(tools, flow, memory)
    mcp = McpToolService(tools, flow)

    mode = (agent_mode or settings.AGENT_MODE).lower()
    llm_agent = None
    if mode == "llm":
        from ai.agent import LlmWalletAgent
        llm_agent = LlmWalletAgent(tools, memory, orchestrator, groq=groq)

    logger.info(f"[Services] session backend={backend}, agent mode={mode}")
    return Services(
        chain=chain,
        provider=provider,
        balances=balances,
        transfers=transfers,
        links=links,
        tools=tools,
        sessions=sessions,
        memory=memory,
        flow=flow,
        orchestrator=orchestrator,
        mcp=mcp,
        llm_agent=llm_agent,
        agent_mode=mode,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services
