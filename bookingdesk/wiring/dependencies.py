from functools import lru_cache
import logging

from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.application.ports.push_channel import PushChannelPort
from bookingdesk.application.session import CalendarSession
from bookingdesk.application.utils.slot_grid import SlotGrid, build_slot_grid
from bookingdesk.core.config import Settings, settings
from bookingdesk.domain.entities.user import CurrentUser, Role
from bookingdesk.infrastructure.booking_api.http_booking_store import HttpBookingStore
from bookingdesk.infrastructure.booking_api.mock_booking_store import InMemoryBookingStore
from bookingdesk.infrastructure.notify.logging_notifier import LoggingNotifier
from bookingdesk.infrastructure.push.loopback_channel import LoopbackPushHub
from bookingdesk.infrastructure.push.websocket_channel import WebSocketPushChannel
from bookingdesk.infrastructure.store.memory_event_cache import MemoryEventCache

logger = logging.getLogger(__name__)


def _is_local(cfg: Settings) -> bool:
    return cfg.ENV.lower() in {"dev", "local"}


@lru_cache
def get_loopback_hub() -> LoopbackPushHub:
    return LoopbackPushHub()


@lru_cache
def get_dev_store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


def get_slot_grid(cfg: Settings = settings) -> SlotGrid:
    return build_slot_grid(cfg.SLOT_GRID_START, cfg.SLOT_GRID_END, cfg.SLOT_STEP_MINUTES, cfg.SLOTS_PER_TIME)


def get_current_user(cfg: Settings = settings) -> CurrentUser:
    return CurrentUser(id=cfg.CURRENT_USER_ID, role=Role.parse(cfg.CURRENT_USER_ROLE), name=cfg.CURRENT_USER_NAME)


def get_booking_store(cfg: Settings = settings) -> BookingStorePort:
    if not cfg.BOOKING_API_BASE_URL or _is_local(cfg):
        logger.info("Using InMemoryBookingStore (ENV=%s, API url set=%s)", cfg.ENV, bool(cfg.BOOKING_API_BASE_URL))
        return get_dev_store()
    logger.info("Using HttpBookingStore")
    return HttpBookingStore(
        base_url=cfg.BOOKING_API_BASE_URL,
        token=cfg.BOOKING_API_TOKEN,
        timeout=cfg.HTTP_TIMEOUT_SECONDS,
        fetch_limit=cfg.FETCH_LIMIT,
    )


def get_push_channel(client_id: str, cfg: Settings = settings) -> PushChannelPort:
    if not cfg.PUSH_URL or _is_local(cfg):
        logger.info("Using loopback push channel")
        return get_loopback_hub().channel(client_id)
    return WebSocketPushChannel(url=cfg.PUSH_URL, token=cfg.BOOKING_API_TOKEN, client_id=client_id)


def build_calendar_session(
    cfg: Settings = settings,
    user: CurrentUser | None = None,
    store: BookingStorePort | None = None,
    push: PushChannelPort | None = None,
) -> CalendarSession:
    user = user or get_current_user(cfg)
    return CalendarSession(
        user=user,
        store=store or get_booking_store(cfg),
        push=push or get_push_channel(user.id, cfg),
        cache=MemoryEventCache(),
        notifier=LoggingNotifier(),
        grid=get_slot_grid(cfg),
        min_fetch_interval=cfg.MIN_FETCH_INTERVAL_SECONDS,
        push_debounce=cfg.PUSH_DEBOUNCE_SECONDS,
        offline_retry_delay=cfg.OFFLINE_RETRY_DELAY_SECONDS,
    )
