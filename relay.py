from typing import Any, Iterable

from backend import Connection, ConnectionRegistry
from errors import TargetUnreachable
from logging_config import get_logger

logger = get_logger(__name__)


class SignalingRelay:
    """Point-to-point forwarding of opaque signaling payloads.

    A target that is not connected gets the message queued in the
    connection registry; it is delivered when the target identifies or
    reconnects. Queued and immediate deliveries to one target share a single
    FIFO order because a live target's queue is flushed before anything new
    is sent to it.
    """

    def __init__(self, connections: ConnectionRegistry):
        self.connections = connections

    def relay(self, sender: Connection, target_id: str, event: str, payload: dict) -> bool:
        """Forward `payload` to `target_id` tagged with the sender's address.

        Returns True when delivered immediately, False when queued or, for a
        released session, dropped.
        """
        message = {**payload, "sender": sender.address}
        try:
            target = self.connections.require(target_id)
        except TargetUnreachable:
            if self.connections.enqueue(target_id, event, message):
                logger.info(f"{event} from {sender.address} to {target_id} queued, target not connected")
            return False

        self.connections.drain(target_id)
        target.send(event, message)
        logger.debug(f"Relayed {event} from {sender.address} to {target_id}")
        return True

    def broadcast(self, sender: Connection, member_ids: Iterable[str], event: str, payload: Any) -> int:
        """Relay to every member except the sender; returns how many were tried."""
        count = 0
        for member_id in member_ids:
            if member_id == sender.session_id:
                continue
            self.relay(sender, member_id, event, payload)
            count += 1
        logger.debug(f"Broadcast {event} from {sender.address} to {count} room members")
        return count
