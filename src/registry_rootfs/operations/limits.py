"""Resource ceilings checked before any blob transfer."""

from dataclasses import dataclass
from typing import Sequence

from ..core.types import DEFAULT_LIMITS, GIB, LayerDescriptor, ResourceLimits
from ..exceptions import ResourceLimitError
from ..utils.security import DOWNLOAD_BLOCKED, SecurityLogger

TOO_MANY_LAYERS = "too_many_layers"
LAYER_TOO_LARGE = "layer_too_large"
IMAGE_TOO_LARGE = "image_too_large"


@dataclass(frozen=True)
class RejectionReason:
    code: str
    message: str
    ordinal: int | None = None


def _gib(size: int) -> str:
    return f"{size / GIB:.2f} GiB"


def check_layer_limits(
    layers: Sequence[LayerDescriptor], limits: ResourceLimits = DEFAULT_LIMITS
) -> RejectionReason | None:
    """Check layer count, per-layer size and total size, in that order.

    Returns:
        None when the image is acceptable, otherwise the first violation
    """
    if len(layers) > limits.max_layers:
        return RejectionReason(
            code=TOO_MANY_LAYERS,
            message=f"Too many layers: {len(layers)} (max {limits.max_layers})",
        )

    for ordinal, layer in enumerate(layers, 1):
        if layer.size > limits.max_layer_size:
            return RejectionReason(
                code=LAYER_TOO_LARGE,
                message=(
                    f"Layer {ordinal} too large: {_gib(layer.size)} "
                    f"(max {_gib(limits.max_layer_size)})"
                ),
                ordinal=ordinal,
            )

    total = sum(layer.size for layer in layers)
    if total > limits.max_total_size:
        return RejectionReason(
            code=IMAGE_TOO_LARGE,
            message=f"Image too large: {_gib(total)} (max {_gib(limits.max_total_size)})",
        )

    return None


def enforce_layer_limits(
    layers: Sequence[LayerDescriptor],
    limits: ResourceLimits = DEFAULT_LIMITS,
    audit: SecurityLogger | None = None,
    subject: str | None = None,
) -> None:
    """Reject an image that exceeds ``limits``.

    The rejection is written to the security audit log before the error
    is raised.

    Raises:
        ResourceLimitError: If any limit is exceeded
    """
    reason = check_layer_limits(layers, limits)
    if reason is None:
        return

    if audit is not None:
        audit.log_event(DOWNLOAD_BLOCKED, reason.message, subject=subject, ok=False)

    raise ResourceLimitError(reason.message, code=reason.code, ordinal=reason.ordinal)
