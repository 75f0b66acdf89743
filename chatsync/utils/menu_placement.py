"""
Context menu placement for a message bubble.

Pure function of the distances between the message's bounding box and the
edges of its scroll container.
"""
from typing import Optional

from chatsync.config import settings
from chatsync.schemas.message import MenuPlacement


def default_align(is_own_message: bool) -> str:
    """Sender-side messages open their menu to the right, received ones to the left."""
    return "right" if is_own_message else "left"


def choose_menu_placement(
    space_above: Optional[float],
    space_below: Optional[float],
    space_left: Optional[float],
    space_right: Optional[float],
    is_own_message: bool,
    min_vertical: Optional[int] = None,
    min_horizontal: Optional[int] = None
) -> MenuPlacement:
    """
    Choose where to open a message's context menu.

    Args:
        space_above: Pixels between the container top and the message top
        space_below: Pixels between the message bottom and the container bottom
        space_left: Pixels between the container left edge and the message
        space_right: Pixels between the message and the container right edge
        is_own_message: Whether the viewer sent the message
        min_vertical: Override for settings.menu_min_vertical_px
        min_horizontal: Override for settings.menu_min_horizontal_px

    Returns:
        MenuPlacement with placement "above"/"below" and align "left"/"right".
        Without measurements (no container) the default placement is returned.
    """
    align = default_align(is_own_message)
    measurements = (space_above, space_below, space_left, space_right)
    if any(m is None for m in measurements):
        return MenuPlacement(placement="above", align=align)

    if min_vertical is None:
        min_vertical = settings.menu_min_vertical_px
    if min_horizontal is None:
        min_horizontal = settings.menu_min_horizontal_px

    if space_above < min_vertical and space_below > space_above:
        placement = "below"
    else:
        placement = "above"

    if align == "right" and space_right < min_horizontal and space_left > space_right:
        align = "left"
    elif align == "left" and space_left < min_horizontal and space_right > space_left:
        align = "right"

    return MenuPlacement(placement=placement, align=align)
