"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/vigia/publisher.py`.
Canal de difusión de cambios: cada suscriptor recibe primero el snapshot
completo y luego cada evento `result:new` / `result:updated` seguido del
snapshot refrescado `results:all`.

Componentes detectados:
  - EventKind
  - ResultEvent
  - ChannelMessage
  - SubscriptionMode
  - Subscription
  - ChangePublisher

Notas:
- La publicación nunca bloquea: un suscriptor con la cola llena se desconecta.
- El registro de suscriptores ocurre bajo el candado del almacén para que
  snapshot y flujo sean atómicos.

======================== ENGLISH ========================
File: `src/vigia/publisher.py`.
Change fan-out channel: each subscriber first receives the full snapshot and
then every `result:new` / `result:updated` event followed by the refreshed
`results:all` snapshot.

Detected components:
  - EventKind
  - ResultEvent
  - ChannelMessage
  - SubscriptionMode
  - Subscription
  - ChangePublisher

Notes:
- Publishing never blocks: a subscriber with a full queue is detached.
- Subscriber registration happens under the store lock so that snapshot and
  stream are atomic.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .logging import get_logger

logger = get_logger(__name__)

SNAPSHOT_EVENT = "results:all"
DEFAULT_QUEUE_SIZE = 256


class EventKind(str, Enum):
    """Tipos de evento del almacén.

    English: Store event kinds.
    """

    CREATED = "created"
    OVERRIDDEN = "overridden"

    @property
    def channel_name(self) -> str:
        return "result:new" if self is EventKind.CREATED else "result:updated"


@dataclass(frozen=True)
class ResultEvent:
    """Evento emitido por cada mutación exitosa.

    Attributes:
        kind (EventKind): Creado o sobrescrito.
        record (Dict[str, Any]): Copia del registro resultante.
        sequence (int): Número monotónico de mutación.

    English:
        Event emitted by every successful mutation.

    Attributes:
        kind (EventKind): Created or overridden.
        record (Dict[str, Any]): Copy of the resulting record.
        sequence (int): Monotonic mutation number.
    """

    kind: EventKind
    record: Dict[str, Any]
    sequence: int


@dataclass(frozen=True)
class ChannelMessage:
    """Mensaje entregado a un suscriptor.

    English: Message delivered to a subscriber.
    """

    event: str
    data: Any
    sequence: int

    @property
    def is_snapshot(self) -> bool:
        return self.event == SNAPSHOT_EVENT

    def as_json(self) -> Dict[str, Any]:
        return {"event": self.event, "data": self.data}


class SubscriptionMode(str, Enum):
    """Qué mensajes recibe un suscriptor.

    English: Which messages a subscriber receives.
    """

    BOTH = "both"
    EVENTS = "events"
    SNAPSHOTS = "snapshots"


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Subscription:
    """Suscripción con snapshot inicial y cola acotada.

    La capacidad se controla con un contador propio; la entrega a un
    consumidor asíncrono pasa siempre por ``call_soon_threadsafe`` del bucle
    que consume, de modo que el orden se conserva aunque el productor corra en
    otro hilo.

    English:
        Subscription with an initial snapshot and a bounded queue.

        Capacity is tracked by an own counter; delivery to an async consumer
        always goes through the consuming loop's ``call_soon_threadsafe`` so
        ordering holds even when the producer runs on another thread.
    """

    def __init__(
        self,
        subscription_id: int,
        initial_snapshot: List[Dict[str, Any]],
        initial_sequence: int,
        mode: SubscriptionMode = SubscriptionMode.BOTH,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.id = subscription_id
        self.mode = mode
        self.initial_snapshot = initial_snapshot
        self.initial_sequence = initial_sequence
        self.overflowed = False
        self.closed = False
        self._capacity = queue_size
        self._pending = 0
        self._finished = False
        self._guard = threading.Lock()
        self._loop = _running_loop()
        self._queue: asyncio.Queue[Optional[ChannelMessage]] = asyncio.Queue()

    def initial_message(self) -> ChannelMessage:
        return ChannelMessage(SNAPSHOT_EVENT, self.initial_snapshot, self.initial_sequence)

    def accepts(self, message: ChannelMessage) -> bool:
        if self.mode is SubscriptionMode.BOTH:
            return True
        if self.mode is SubscriptionMode.SNAPSHOTS:
            return message.is_snapshot
        return not message.is_snapshot

    def _deliver(self, item: Optional[ChannelMessage]) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
        else:
            self._queue.put_nowait(item)

    def offer(self, message: ChannelMessage) -> bool:
        """Encola sin bloquear; False si la cola está llena o cerrada.

        English: Enqueue without blocking; False when full or closed.
        """
        with self._guard:
            if self.closed or self._pending >= self._capacity:
                return False
            self._pending += 1
        self._deliver(message)
        return True

    def close(self, *, overflowed: bool = False) -> None:
        """Cierra la suscripción y despierta al consumidor.

        Tras un desbordamiento los mensajes pendientes se descartan.

        English:
            Close the subscription and wake the consumer.

            After an overflow, pending messages are discarded.
        """
        with self._guard:
            if self.closed:
                return
            self.closed = True
            self.overflowed = overflowed
        self._deliver(None)

    def _take(self, message: Optional[ChannelMessage]) -> Optional[ChannelMessage]:
        if message is None or self.overflowed:
            self._finished = True
            return None
        with self._guard:
            self._pending -= 1
        return message

    async def get(self) -> Optional[ChannelMessage]:
        """Siguiente mensaje, o None cuando la suscripción terminó.

        English: Next message, or None once the subscription ended.
        """
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if self._finished or self.overflowed:
            self._finished = True
            return None
        return self._take(await self._queue.get())

    def drain(self) -> List[ChannelMessage]:
        """Mensajes ya encolados, sin esperar. / Already queued messages, without waiting."""
        messages: List[ChannelMessage] = []
        while not self._finished and not self._queue.empty():
            message = self._take(self._queue.get_nowait())
            if message is None:
                break
            messages.append(message)
        return messages

    def pending(self) -> int:
        with self._guard:
            return self._pending


class ChangePublisher:
    """Difunde eventos del almacén a un conjunto dinámico de suscriptores.

    English: Fans store events out to a dynamic set of subscribers.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self._queue_size = queue_size
        self._subscribers: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def attach(
        self,
        snapshot: List[Dict[str, Any]],
        sequence: int,
        mode: SubscriptionMode = SubscriptionMode.BOTH,
    ) -> Subscription:
        """Registra un suscriptor con el snapshot vigente.

        Debe llamarse con el candado del almacén tomado.

        English:
            Register a subscriber with the current snapshot.

            Must be called while holding the store lock.
        """
        with self._lock:
            subscription = Subscription(next(self._ids), snapshot, sequence, mode, self._queue_size)
            self._subscribers[subscription.id] = subscription
        logger.info("subscriber_attached", subscription_id=subscription.id, mode=mode.value, records=len(snapshot))
        return subscription

    def detach(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
        subscription.close()
        if removed is not None:
            logger.info("subscriber_detached", subscription_id=subscription.id)

    def publish(self, event: ResultEvent, snapshot_factory: Callable[[], List[Dict[str, Any]]]) -> int:
        """Entrega el evento y el snapshot refrescado sin bloquear.

        Returns:
            int: Suscriptores que recibieron el evento.

        English:
            Deliver the event and the refreshed snapshot without blocking.

        Returns:
            int: Subscribers that received the event.
        """
        with self._lock:
            subscribers = list(self._subscribers.values())
        if not subscribers:
            return 0

        event_message = ChannelMessage(event.kind.channel_name, event.record, event.sequence)
        snapshot_message: Optional[ChannelMessage] = None
        if any(subscriber.mode is not SubscriptionMode.EVENTS for subscriber in subscribers):
            snapshot_message = ChannelMessage(SNAPSHOT_EVENT, snapshot_factory(), event.sequence)

        delivered = 0
        lagging: List[Subscription] = []
        for subscriber in subscribers:
            outgoing = [event_message] if snapshot_message is None else [event_message, snapshot_message]
            accepted = True
            for message in outgoing:
                if subscriber.accepts(message) and not subscriber.offer(message):
                    accepted = False
                    break
            if not accepted:
                lagging.append(subscriber)
                continue
            if subscriber.accepts(event_message):
                delivered += 1

        for subscriber in lagging:
            with self._lock:
                self._subscribers.pop(subscriber.id, None)
            subscriber.close(overflowed=True)
            logger.warning("subscriber_overflowed", subscription_id=subscriber.id, sequence=event.sequence)
        return delivered

    def close_all(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()
