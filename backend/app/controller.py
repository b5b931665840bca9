"""Controller / Orchestrator for the admin panel and the chat widget.

Owns the working StoreConfiguration, compiles it into the system instruction
and keeps one chat session plus conversation log per widget session id. Any
change to the store data swaps every open session for a reset one bound to the
new instruction; live handles are never edited in place.
"""
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .config import Config, ConfigurationError
from .conversation import ConversationLog
from .generate import GenerationClient
from .ingest import ingest_csv_bytes, ingest_document_bytes
from .prompt_builder import PromptBuilder, get_prompt_builder
from .session import ChatSession, initialize_session, reset_session
from ..data.config_store import ConfigStore
from ..data.demo_data import demo_configuration
from ..schemas.io_models import ChatMessage, KnowledgeDocument, ProductRecord, StoreConfiguration
from ..utils.logger import get_logger

logger = get_logger("controller")

EMBED_TEMPLATE = """<iframe
  src="{base_url}/?mode=embed"
  width="100%"
  height="600px"
  title="{store_name} assistant"
  style="position: fixed; bottom: 20px; right: 20px; border: none; z-index: 9999; width: 400px; height: 600px;"
></iframe>"""


class UnknownSessionError(KeyError):
    pass


@dataclass
class Conversation:
    session: ChatSession
    log: ConversationLog


class Controller:
    def __init__(self, config_store: Optional[ConfigStore] = None,
                 client_factory: Callable[[], GenerationClient] = GenerationClient,
                 builder: Optional[PromptBuilder] = None):
        self.config_store = config_store or ConfigStore()
        self.client_factory = client_factory
        self.builder = builder or get_prompt_builder()
        self.conversations: Dict[str, Conversation] = {}
        self._lock = threading.Lock()

        loaded = self.config_store.load()
        self.config = loaded or StoreConfiguration(store_name=Config.DEFAULT_STORE_NAME)
        self.system_instruction = self.builder.build_system_instruction(self.config)
        logger.info(f"Controller ready for {self.config.store_name!r} (loaded from storage: {loaded is not None})")

    # ---- configuration -------------------------------------------------

    def config_status(self) -> Tuple[bool, Optional[str]]:
        """Check up front whether chat can start; returns (configured, reason)."""
        try:
            client = self.client_factory()
            Config.validate(getattr(client, "api_key", None))
        except ConfigurationError as e:
            return False, str(e)
        return True, None

    def _apply(self, config: StoreConfiguration):
        """Swap in a new working configuration and rebind open sessions."""
        instruction = self.builder.build_system_instruction(config)
        with self._lock:
            self.config = config
            self.system_instruction = instruction
            for conv in self.conversations.values():
                conv.session = reset_session(conv.session, instruction)
        logger.info(f"Store data updated: {len(config.products)} products, "
                    f"{len(config.documents)} documents; {len(self.conversations)} sessions rebound")

    def save_config(self, config: Optional[StoreConfiguration] = None) -> StoreConfiguration:
        """Replace the configuration wholesale (if given) and persist it."""
        if config is not None:
            self._apply(config)
        self.config_store.save(self.config)
        return self.config

    def load_demo(self) -> StoreConfiguration:
        self._apply(demo_configuration())
        return self.config

    def import_products(self, raw: bytes, filename: str = "products.csv", mode: str = "replace") -> List[ProductRecord]:
        """
        Parse an uploaded CSV into the working catalog.

        Returns the parsed products; an empty list leaves the catalog untouched.
        FileReadError propagates for unreadable uploads.
        """
        products = ingest_csv_bytes(raw, filename)
        if not products:
            return products
        if mode == "append":
            merged = list(self.config.products) + products
        else:
            merged = products
        self._apply(self.config.model_copy(update={"products": merged}))
        return products

    def add_document(self, filename: str, raw: bytes) -> KnowledgeDocument:
        doc = ingest_document_bytes(filename, raw)
        self._apply(self.config.model_copy(update={"documents": list(self.config.documents) + [doc]}))
        return doc

    def remove_document(self, doc_id: str) -> bool:
        remaining = [d for d in self.config.documents if d.id != doc_id]
        if len(remaining) == len(self.config.documents):
            return False
        self._apply(self.config.model_copy(update={"documents": remaining}))
        return True

    def embed_code(self, base_url: Optional[str] = None) -> str:
        return EMBED_TEMPLATE.format(base_url=(base_url or Config.PUBLIC_BASE_URL).rstrip("/"),
                                     store_name=self.config.store_name)

    # ---- chat ----------------------------------------------------------

    def create_session(self, session_id: Optional[str] = None) -> Tuple[str, bool, Conversation]:
        """
        Open a chat session for a widget.

        Raises:
            ConfigurationError: chat is not available
        """
        session_id = session_id or str(uuid.uuid4())
        with self._lock:
            existing = self.conversations.get(session_id)
            if existing is not None:
                return session_id, False, existing
            client = self.client_factory()
            Config.validate(getattr(client, "api_key", None))
            session = initialize_session(self.system_instruction, client)
            conv = Conversation(session=session, log=ConversationLog(self.config.store_name))
            self.conversations[session_id] = conv
        return session_id, True, conv

    def get_conversation(self, session_id: str) -> Conversation:
        conv = self.conversations.get(session_id)
        if conv is None:
            raise UnknownSessionError(session_id)
        return conv

    def reset_conversation(self, session_id: str) -> Conversation:
        """Start the widget over: fresh welcome message and a new session handle."""
        with self._lock:
            old = self.get_conversation(session_id)
            conv = Conversation(session=reset_session(old.session, self.system_instruction),
                                log=ConversationLog(self.config.store_name))
            self.conversations[session_id] = conv
        return conv

    def close_session(self, session_id: str) -> bool:
        with self._lock:
            return self.conversations.pop(session_id, None) is not None

    def ask(self, session_id: str, query: str) -> ChatMessage:
        conv = self.get_conversation(session_id)
        return conv.log.reply(conv.session, query)

    def ask_stream(self, session_id: str, query: str) -> Iterator[str]:
        conv = self.get_conversation(session_id)
        return conv.log.stream_reply(conv.session, query)
