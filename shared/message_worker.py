# shared/message_worker.py
import asyncio
import logging
from collections import deque
from typing import Optional

from adapters.whatsapp.whatsapp_adapter import MessagingClient
from agent.main import Services, handle_inbound
from agent.registration.service import flow_key
from contacts.formatting import GENERIC_FAILURE
from models.input import InboundMessage
from observability.telemetry import mark_error

logger = logging.getLogger(__name__)

message_queue: deque = deque()   # FIFO queue of InboundMessage

# messages from different phones run concurrently, same phone is serialized by the keyed lock
MAX_CONCURRENT_MESSAGES = 8


async def wait_or_stop(stop_event: asyncio.Event, timeout: float) -> None:
    if stop_event.is_set():
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        # timed out: just continue the loop
        pass


async def process_message(services: Services, messenger: MessagingClient, msg: InboundMessage) -> Optional[str]:
    """
    Handles one message and sends the reply. Any failure still gets the user a reply.
    """
    try:
        reply = await asyncio.to_thread(handle_inbound, services, msg)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.exception("Worker: failed processing message %s", msg.message_id or "<unknown>")
        mark_error(e, kind="WorkerError")
        reply = GENERIC_FAILURE

    if reply:
        sent = await messenger.send_text(msg.phone, reply)
        if not sent:
            logger.warning("Worker: reply to message %s was not delivered", msg.message_id)
    return reply


async def _queue_worker(stop_event: asyncio.Event, services: Services, messenger: MessagingClient):
    in_flight: set = set()
    slots = asyncio.Semaphore(MAX_CONCURRENT_MESSAGES)
    # asyncio.Lock wakes waiters in order, so messages of one phone keep arrival order
    phone_order: dict = {}   # key -> [lock, tasks holding or waiting]

    async def _run(msg: InboundMessage):
        key = flow_key(msg.phone)
        entry = phone_order.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                async with slots:
                    await process_message(services, messenger, msg)
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del phone_order[key]

    while not stop_event.is_set():
        try:
            if not message_queue:
                await wait_or_stop(stop_event, 0.05)  # idle wait; interruptible
                continue

            try:
                msg = message_queue.popleft()
            except IndexError:
                # Race: queue became empty between check and pop
                await wait_or_stop(stop_event, 0.01)
                continue

            task = asyncio.create_task(_run(msg), name=f"message-{msg.message_id}")
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        except asyncio.CancelledError:
            logger.info("Queue worker cancelled; shutting down.")
            break
        except Exception:
            logger.exception("Worker loop error")
            await wait_or_stop(stop_event, 2)  # brief, interruptible backoff

    if in_flight:
        await asyncio.gather(*in_flight, return_exceptions=True)


async def expiry_sweep_loop(stop_event: asyncio.Event, services: Services):
    """Abandons expired registration flows every EXPIRY_SWEEP_INTERVAL_SECONDS."""
    interval = services.settings.expiry_sweep_interval_seconds
    while not stop_event.is_set():
        try:
            await asyncio.to_thread(services.registration.expire_stale_flows)
        except Exception:
            logger.exception("Expiry sweep failed")
        await wait_or_stop(stop_event, interval)
