"""
Application Configuration and Constants
=======================================

This module contains all global configuration values, constants, and defaults used
throughout the ImageTagger metadata engine. It serves as a single source of truth for:

- Supported image formats
- Backup and sidecar file naming
- Embedded metadata field identifiers (EXIF / IPTC)
- Writer identity strings stamped into tagged files

Key Components:
- Format Table: Default allow-list of extensions the engine will touch
- Artifact Naming: Suffixes for the transient backup and the sidecar files
- Field Identifiers: Numeric EXIF tags and IPTC datasets written by the strategies
- Reader Filters: Entry-name fragments that identify human tags when reading

Note:
    All constants use UPPER_SNAKE_CASE naming convention. Runtime-tunable values
    live in src.core.settings and are passed explicitly to the service.

Author: ImageTagger Project
"""

# ============================================================================
# APPLICATION SETTINGS
# ============================================================================

APP_NAME = "ImageTagger"
APP_VERSION = "1.0"

# ============================================================================
# FORMAT SUPPORT
# ============================================================================
# Extensions (lowercase, no leading dot) the engine accepts by default.
# Anything else is rejected before any I/O happens.

DEFAULT_SUPPORTED_FORMATS = ("jpg", "jpeg", "png", "tiff", "tif")

# Maps extensions to the Pillow format name used when re-encoding
PIL_FORMAT_MAP = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "tiff": "TIFF",
    "tif": "TIFF",
}

# ============================================================================
# ARTIFACT NAMING
# ============================================================================

# Appended to the full image file name: photo.jpg -> photo.jpg.backup
BACKUP_SUFFIX = ".backup"

# Replace the image extension: photo.jpg -> photo.tags / photo.metadata.json
TAGS_SIDECAR_SUFFIX = ".tags"
METADATA_SIDECAR_SUFFIX = ".metadata.json"

# Appended to a sidecar name while it is being written: photo.tags.tmp
SIDECAR_TEMP_SUFFIX = ".tmp"

# Temp file iptcinfo3 leaves next to the image after save()
IPTC_TEMP_SUFFIX = "~"

# ============================================================================
# TAG SERIALIZATION
# ============================================================================

TAG_SEPARATOR = ", "
XP_KEYWORD_SEPARATOR = ";"

# Written into EXIF Software so downstream tools can tell who tagged the file
SOFTWARE_TAG = f"{APP_NAME} v{APP_VERSION}"

# Sidecar JSON identity
SIDECAR_GENERATOR = APP_NAME
SIDECAR_FORMAT_VERSION = "1.0"

# ============================================================================
# EMBEDDED FIELD IDENTIFIERS
# ============================================================================

EXIF_IMAGE_DESCRIPTION = 0x010E
EXIF_USER_COMMENT = 0x9286
EXIF_XP_KEYWORDS = 0x9C9E
EXIF_IFD_POINTER = 0x8769

# EXIF field type codes
EXIF_TYPE_ASCII = 2
EXIF_TYPE_UNDEFINED = 7

# IPTC-NAA TIFF tag holding the raw IIM block
TIFF_IPTC_NAA = 33723

# TIFF compressions Pillow encodes itself. Every other compression is
# handed to libtiff, which cannot write a nested Exif sub-IFD.
TIFF_NATIVE_COMPRESSIONS = ("raw",)
TIFF_DEFAULT_COMPRESSION = "raw"

# IPTC application record datasets (record, dataset)
IPTC_RECORD_APPLICATION = 2
IPTC_KEYWORDS = (2, 25)

IPTC_DATASET_NAMES = {
    (1, 90): "Coded Character Set",
    (2, 0): "Record Version",
    (2, 5): "Object Name",
    (2, 15): "Category",
    (2, 20): "Supplemental Category",
    (2, 25): "Keywords",
    (2, 55): "Date Created",
    (2, 80): "By-line",
    (2, 105): "Headline",
    (2, 116): "Copyright Notice",
    (2, 120): "Caption/Abstract",
}

# ============================================================================
# READER CONFIGURATION
# ============================================================================
# An entry is considered a human tag when its name contains any of these
# fragments (case-insensitive).

TAG_ENTRY_NAME_FRAGMENTS = ("comment", "description", "keywords")

# ============================================================================
# LEGACY ENCODER CONFIGURATION
# ============================================================================

# Quality used by the high-quality encoder configuration for JPEG
HIGH_QUALITY_JPEG = 95

# Format-specific parameters for the high-quality encoder configuration
HIGH_QUALITY_PARAMS = {
    "JPEG": {"quality": HIGH_QUALITY_JPEG, "subsampling": 0},
    "PNG": {"compress_level": 9},
    # Uncompressed, so the Exif sub-IFD holding UserComment stays writable
    "TIFF": {"compression": TIFF_DEFAULT_COMPRESSION},
}
