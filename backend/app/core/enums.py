from enum import Enum


class SlotName(str, Enum):
    LEFT_TOP = "leftTop"
    LEFT_CENTER = "leftCenter"
    LEFT_BOTTOM = "leftBottom"
    RIGHT_TOP = "rightTop"
    RIGHT_CENTER = "rightCenter"
    RIGHT_BOTTOM = "rightBottom"
    HOSPITAL_LOGO = "hospitalLogo"
    SECTION_ICON = "sectionIcon"
    BRAND_LOGO = "brandLogo"


SCREENING_SLOTS: tuple[SlotName, ...] = (
    SlotName.LEFT_TOP,
    SlotName.LEFT_CENTER,
    SlotName.LEFT_BOTTOM,
    SlotName.RIGHT_TOP,
    SlotName.RIGHT_CENTER,
    SlotName.RIGHT_BOTTOM,
)


class AssetStatus(str, Enum):
    OK = "OK"
    PLACEHOLDER = "PLACEHOLDER"


class ComposerState(str, Enum):
    INITIALIZED = "INITIALIZED"
    ASSETS_RESOLVING = "ASSETS_RESOLVING"
    COMPOSING = "COMPOSING"
    ENCODED = "ENCODED"


class ReportStatus(str, Enum):
    GENERATED = "generated"
    REVIEWED = "reviewed"
