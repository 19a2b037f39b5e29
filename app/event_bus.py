"""
Event bus client: one RabbitMQ connection and channel per process.

Design notes
------------
- ``EventBus`` owns the connection/channel pair.  It is constructed once in
  the application lifespan and handed to the subscribers and the publish
  path; nothing reaches it through module globals.
- ``connect()`` is lazy and idempotent.  An ``asyncio.Lock`` serialises the
  creation step so concurrent callers share one pair.  When the broker
  closes the connection the close callback drops both references and the
  next ``publish``/``subscribe`` reconnects; there is no background
  reconnect loop.
- Every topic is a fanout exchange named after the topic.  Publishing is
  fire-and-forget (no publisher confirms).  Each subscription gets an
  exclusive server-named queue and its own consumption task reading with
  ``no_ack=True``, so a delivered message is never redelivered.
- Handler failures are isolated per message: they are logged (after the
  configured number of retries) and the message counts as consumed.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractQueue

from app.config import settings

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Awaitable[None]]


class EventBus:
    def __init__(
        self,
        url: str | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        self._url = url or settings.RABBIT_URL
        self._max_retries = settings.CONSUMER_MAX_RETRIES if max_retries is None else max_retries
        self._retry_delay = settings.CONSUMER_RETRY_DELAY if retry_delay is None else retry_delay
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._lock = asyncio.Lock()
        self._consumers: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._channel is not None and not self._channel.is_closed

    async def connect(self) -> AbstractChannel:
        """Return the shared channel, opening connection and channel if needed."""
        if self.is_connected:
            return self._channel

        async with self._lock:
            if self.is_connected:
                return self._channel
            try:
                if self._connection is None or self._connection.is_closed:
                    self._connection = await aio_pika.connect(self._url)
                    self._connection.close_callbacks.add(self._on_connection_closed)
                    logger.info("RabbitMQ connected")
                self._channel = await self._connection.channel(publisher_confirms=False)
            except Exception as exc:
                logger.error("RabbitMQ connection failed: %s", exc)
                self._channel = None
                raise
            return self._channel

    def _on_connection_closed(self, sender: Any, exc: BaseException | None = None) -> None:
        logger.warning("RabbitMQ connection closed (%s); will reconnect on next use", exc)
        self._connection = None
        self._channel = None

    async def close(self) -> None:
        """Stop consumption tasks and close the channel and connection."""
        for task in self._consumers:
            task.cancel()
        if self._consumers:
            await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers.clear()

        connection = self._connection
        self._connection = None
        self._channel = None
        if connection is not None and not connection.is_closed:
            await connection.close()
            logger.info("RabbitMQ connection closed")

    # ------------------------------------------------------------------
    # Publish / subscribe
    # ------------------------------------------------------------------

    async def publish(self, topic: str, message: Any, durable: bool = True) -> None:
        """
        Publish *message* as JSON to the fanout exchange *topic*.

        Connection failures propagate; once the frame is handed to the
        broker nothing further is observable.
        """
        channel = await self.connect()
        exchange = await channel.declare_exchange(
            topic, aio_pika.ExchangeType.FANOUT, durable=durable
        )
        body = json.dumps(message, default=str).encode()
        await exchange.publish(
            aio_pika.Message(body=body, content_type="application/json"),
            routing_key="",
        )
        logger.debug("Published to %r: %s", topic, message)

    async def subscribe(self, topic: str, handler: MessageHandler, durable: bool = True) -> None:
        """
        Bind an exclusive anonymous queue to *topic* and start a task that
        calls *handler* with the decoded JSON payload of every delivery.
        """
        channel = await self.connect()
        exchange = await channel.declare_exchange(
            topic, aio_pika.ExchangeType.FANOUT, durable=durable
        )
        queue = await channel.declare_queue(exclusive=True)
        await queue.bind(exchange, routing_key="")

        task = asyncio.create_task(self._consume(topic, queue, handler), name=f"consume:{topic}")
        self._consumers.append(task)
        logger.info("Subscribed to %r (queue %s)", topic, queue.name)

    async def _consume(self, topic: str, queue: AbstractQueue, handler: MessageHandler) -> None:
        try:
            async with queue.iterator(no_ack=True) as messages:
                async for message in messages:
                    await self._dispatch(topic, message.body, handler)
        except asyncio.CancelledError:
            raise
        except Exception:
            # Typically the channel went away with the connection.  The
            # subscription is not re-established automatically.
            logger.exception("Consumer for %r stopped", topic)

    async def _dispatch(self, topic: str, body: bytes | None, handler: MessageHandler) -> None:
        if not body:
            logger.debug("Dropping empty message on %r", topic)
            return
        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("Dropping undecodable message on %r: %r", topic, body[:200])
            return

        attempts = self._max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await handler(payload)
                return
            except asyncio.CancelledError:
                raise
            except Exception:
                if attempt >= attempts:
                    logger.exception(
                        "Handler for %r failed after %d attempt(s); message dropped",
                        topic,
                        attempt,
                    )
                    return
                logger.warning(
                    "Handler for %r failed (attempt %d/%d), retrying in %.1fs",
                    topic,
                    attempt,
                    attempts,
                    self._retry_delay,
                )
                await asyncio.sleep(self._retry_delay)
