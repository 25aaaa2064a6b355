"""
Drop ingestion: palette item dropped on the canvas -> add_node_from_palette.

The payload is validated before anything is sent. A drop without an entity
reference never reaches the authority. The node only appears once the
authority confirms it with add_node.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from spatialgraph.coordinates import Camera
from spatialgraph.errors import MalformedDropError
from spatialgraph.events import Request, add_node_from_palette_request, coerce_entity_ref
from spatialgraph.models import EntityRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DropPayload:
    entity_ref: EntityRef
    origin_ref: Optional[str] = None

    @classmethod
    def parse(cls, raw: Any) -> "DropPayload":
        """
        Validate a drag payload.

        Accepts {'entity_ref', 'origin_ref'} and the palette's older
        {'media_id', 'image_url'} keys.

        Raises:
            MalformedDropError: no usable entity reference
        """
        if not isinstance(raw, dict):
            raise MalformedDropError(f"drop payload must be an object, got {type(raw).__name__}")
        value = raw.get("entity_ref", raw.get("media_id"))
        entity_ref = coerce_entity_ref(value)
        if entity_ref is None:
            raise MalformedDropError(f"drop payload has no entity reference: {raw!r}")
        origin = raw.get("origin_ref", raw.get("image_url"))
        return cls(entity_ref=entity_ref, origin_ref=str(origin) if origin else None)


class DropIngestion:
    """Turns drops into positioned node requests."""

    def ingest(self, raw: Dict[str, Any], pointer_x: float, pointer_y: float,
               camera: Camera) -> Optional[Request]:
        """
        Args:
            raw: drag payload from the palette
            pointer_x, pointer_y: pointer in client coordinates at drop time
            camera: camera read from the engine at drop time

        Returns:
            The request to send, or None if the payload was rejected.
        """
        try:
            payload = DropPayload.parse(raw)
        except MalformedDropError as e:
            logger.warning(f"Rejected drop: {e}")
            return None

        position = camera.to_graph(pointer_x, pointer_y)
        logger.debug(
            f"Drop of entity {payload.entity_ref} at pointer ({pointer_x}, {pointer_y}) "
            f"-> graph ({position.x:.2f}, {position.y:.2f})"
        )
        return add_node_from_palette_request(payload.entity_ref, position, payload.origin_ref)
