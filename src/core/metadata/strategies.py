"""
Encoding Strategies
===================

Interchangeable encoders that each try to persist a tag list for one image.
Every strategy implements ``attempt(path, tags) -> bool``:

- True: the tags are persisted, stop here.
- False: this strategy cannot handle the file, try the next one.
- Raises: unexpected fault. ``run()`` converts it to StrategyOutcome.FAULTED
  so no exception ever unwinds through the strategy chain.

Strategies, in preference order:
1. EmbeddedContainerStrategy: EXIF + keyword container written in place,
   pixel data untouched (JPEG) or re-encoded losslessly (PNG, TIFF).
2. LegacyPropertyRewriteStrategy: rewrites the UserComment property of the
   flat EXIF property list and re-encodes the image with the first encoder
   configuration that works.
3. SidecarStrategy: writes <name>.tags and <name>.metadata.json next to the
   image. Never touches the image bytes.

Dependencies:
- PIL (Pillow): Decoding and re-encoding
- piexif: EXIF splicing for JPEG
- iptcinfo3: IPTC keywords for JPEG
"""

import io
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import piexif
from iptcinfo3 import IPTCInfo
from PIL import Image, PngImagePlugin, UnidentifiedImageError

from src.core import config
from src.core.metadata import containers
from src.core.metadata.models import PropertyItem, StrategyOutcome
from src.core.settings import MetadataSettings
from src.utils.logger import log_exception

# Errors that mean "this container cannot be parsed or written", as opposed
# to an unexpected fault.
CONTAINER_ERRORS = (
    UnidentifiedImageError,
    piexif.InvalidImageDataError,
    ValueError,
    SyntaxError,
    KeyError,
    # libtiff refusing a tag ("Error setting from dictionary")
    RuntimeError,
)


class EncodingStrategy:
    """
    Base class for tag encoders.

    Subclasses implement attempt(). The guard calls run(), which maps the
    result onto a StrategyOutcome.
    """

    name = "strategy"

    def __init__(self, settings: Optional[MetadataSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or MetadataSettings()
        self.logger = logger or logging.getLogger(__name__)

    def attempt(self, path: Path, tags: List[str]) -> bool:
        raise NotImplementedError

    def run(self, path: Path, tags: List[str]) -> StrategyOutcome:
        self.logger.info(f"Trying {self.name} strategy on {path.name}")
        try:
            ok = self.attempt(path, tags)
        except Exception as e:
            log_exception(self.logger, e, f"{self.name} strategy")
            return StrategyOutcome.FAULTED
        return StrategyOutcome.SUCCESS if ok else StrategyOutcome.FAILED

    def __repr__(self):
        return f"<{type(self).__name__} name={self.name!r}>"


def _pil_format(path: Path) -> Optional[str]:
    return config.PIL_FORMAT_MAP.get(path.suffix.lower().lstrip("."))


def _open_detached(path: Path) -> Tuple[Image.Image, bytes]:
    """Open an image from an in-memory copy so the file itself stays unlocked."""
    data = path.read_bytes()
    img = Image.open(io.BytesIO(data))
    img.load()
    return img, data


# ============================================================================
# EMBEDDED CONTAINER STRATEGY
# ============================================================================

class EmbeddedContainerStrategy(EncodingStrategy):
    """
    Writes tags into the image's own metadata containers.

    EXIF fields (all formats):
    - ImageDescription: tags joined with ", "
    - UserComment: tags joined with ", " (UNICODE charset)
    - Software: writer identity, e.g. "ImageTagger v1.0"
    - XPKeywords: tags joined with ";" (Windows keyword field)

    Keyword container:
    - JPEG: IPTC Keywords (2:25), one dataset per tag, via iptcinfo3
    - TIFF: IPTC-NAA block (tag 33723), one dataset per tag
    - PNG: no IPTC container exists; XPKeywords carries the keywords

    Existing values are replaced, so writing the same tags twice leaves the
    same fields behind.
    """

    name = "embedded_container"

    def attempt(self, path: Path, tags: List[str]) -> bool:
        fmt = _pil_format(path)
        writers = {
            "JPEG": self._write_jpeg,
            "PNG": self._write_png,
            "TIFF": self._write_tiff,
        }
        writer = writers.get(fmt)
        if writer is None:
            self.logger.warning(f"No embedded container writer for {path.suffix}")
            return False

        try:
            writer(path, tags)
        except CONTAINER_ERRORS as e:
            self.logger.warning(f"Embedded metadata not writable for {path.name}: {type(e).__name__}: {e}")
            return False

        self.logger.debug(f"Embedded metadata written to {path.name}")
        return True

    def _write_jpeg(self, path: Path, tags: List[str]):
        self._write_iptc_keywords(path, tags)

        self.logger.debug(f"Writing EXIF metadata to {path.name}")
        exif_dict = containers.load_exif_dict(path.read_bytes())
        containers.apply_tag_fields(exif_dict, tags, self.settings.software_tag)
        piexif.insert(piexif.dump(exif_dict), str(path))

    def _write_iptc_keywords(self, path: Path, tags: List[str]):
        self.logger.debug(f"Writing IPTC keywords to {path.name}")
        info = IPTCInfo(str(path), force=True)
        info['keywords'] = list(tags)
        info.save()

        # iptcinfo3 keeps the previous version as "<name>~"
        temp_file = path.with_name(path.name + config.IPTC_TEMP_SUFFIX)
        if temp_file.exists():
            try:
                temp_file.unlink()
            except OSError as tmp_err:
                self.logger.warning(f"Failed to delete temp file {temp_file}: {tmp_err}")

    def _write_png(self, path: Path, tags: List[str]):
        img, _ = _open_detached(path)
        with img:
            exif_dict = containers.load_exif_dict(img.info.get("exif"))
            containers.apply_tag_fields(exif_dict, tags, self.settings.software_tag)

            save_kwargs: Dict[str, Any] = {"format": "PNG", "exif": piexif.dump(exif_dict)}
            pnginfo = PngImagePlugin.PngInfo()
            for key, value in getattr(img, "text", {}).items():
                pnginfo.add_text(key, value)
            save_kwargs["pnginfo"] = pnginfo
            for key in ("icc_profile", "dpi", "transparency", "gamma"):
                if key in img.info:
                    save_kwargs[key] = img.info[key]

            img.save(path, **save_kwargs)

    def _write_tiff(self, path: Path, tags: List[str]):
        img, data = _open_detached(path)
        with img:
            if getattr(img, "n_frames", 1) > 1:
                raise ValueError("multi-page TIFF cannot be re-encoded without losing pages")

            compression = img.info.get("compression", config.TIFF_DEFAULT_COMPRESSION)
            libtiff = containers.uses_libtiff(compression)
            if libtiff:
                self.logger.debug(f"{path.name} uses {compression}; writing IFD0 fields without the Exif sub-IFD")

            exif_dict = containers.load_exif_dict(data)
            containers.apply_tag_fields(exif_dict, tags, self.settings.software_tag)
            tiffinfo = containers.to_tiffinfo(exif_dict, include_exif_ifd=not libtiff)
            tiffinfo[config.TIFF_IPTC_NAA] = containers.encode_iim_keywords(tags)

            save_kwargs: Dict[str, Any] = {
                "format": "TIFF",
                "tiffinfo": tiffinfo,
                "compression": compression,
            }
            for key in ("dpi", "icc_profile"):
                if key in img.info:
                    save_kwargs[key] = img.info[key]

            # A plain copy drops the source IFD, so the old IPTC block is not carried over
            frame = img.copy()

        frame.save(path, **save_kwargs)


# ============================================================================
# LEGACY PROPERTY-REWRITE STRATEGY
# ============================================================================

class LegacyPropertyRewriteStrategy(EncodingStrategy):
    """
    Rewrites the UserComment entry of the flat EXIF property list.

    If a UserComment (0x9286) property exists its payload is replaced,
    otherwise a new ASCII property is appended. The image is then saved with
    the first encoder configuration that does not raise:

    1. High Quality Save: format plus quality parameters
    2. Format Default Save: format only
    3. Default Save: no parameters, format inferred from the extension
    """

    name = "legacy_property_rewrite"

    def attempt(self, path: Path, tags: List[str]) -> bool:
        fmt = _pil_format(path)
        if fmt is None:
            return False

        try:
            img, data = _open_detached(path)
        except CONTAINER_ERRORS as e:
            self.logger.warning(f"Legacy rewrite cannot decode {path.name}: {e}")
            return False

        with img:
            if getattr(img, "n_frames", 1) > 1:
                self.logger.warning(f"Legacy rewrite skips multi-frame image {path.name}")
                return False

            source = data if fmt == "TIFF" else img.info.get("exif")
            try:
                exif_dict = containers.load_exif_dict(source)
            except CONTAINER_ERRORS as e:
                self.logger.warning(f"Existing EXIF unreadable in {path.name}, starting empty: {e}")
                exif_dict = containers.empty_exif_dict()

            items = containers.iter_property_items(exif_dict)
            self.logger.debug(f"Image has {len(items)} property items")
            for i, prop in enumerate(items):
                self.logger.debug(f"Property {i}: ID=0x{prop.id:04X}, Type={prop.type}, Length={prop.length}")

            self._rewrite_user_comment(items, config.TAG_SEPARATOR.join(tags))
            exif_dict = containers.property_items_to_dict(items, exif_dict.get("thumbnail"))

            # TIFF frames are copied so the source IFD is not merged back in
            frame = img.copy() if fmt == "TIFF" else img

            for label, kwargs in self._encoder_configurations(fmt, exif_dict, img.info):
                try:
                    self.logger.debug(f"Trying {label}...")
                    frame.save(path, **kwargs)
                except Exception as e:
                    log_exception(self.logger, e, label, level=logging.WARNING)
                    continue
                self.logger.info(f"Image saved successfully using {label}")
                return True

        self.logger.error(f"All legacy save configurations failed for {path.name}")
        return False

    def _rewrite_user_comment(self, items: List[PropertyItem], text: str):
        for prop in items:
            if prop.id == config.EXIF_USER_COMMENT:
                payload = text.encode("utf-8")
                prop.value = payload
                prop.length = len(payload)
                prop.type = config.EXIF_TYPE_ASCII
                self.logger.debug(f"Updated UserComment property with {len(payload)} bytes")
                return

        self.logger.debug("No existing UserComment property found, creating one")
        new_prop = PropertyItem.ascii(config.EXIF_USER_COMMENT, text, ifd="Exif")
        items.append(new_prop)
        self.logger.debug(f"Created new UserComment property with {new_prop.length} bytes")

    def _encoder_configurations(
        self,
        fmt: str,
        exif_dict: Dict[str, Any],
        source_info: Dict[str, Any]
    ) -> List[Tuple[str, Dict[str, Any]]]:
        configurations: List[Tuple[str, Dict[str, Any]]] = [
            ("High Quality Save", {"format": fmt, **config.HIGH_QUALITY_PARAMS.get(fmt, {})}),
            ("Format Default Save", {"format": fmt}),
            ("Default Save", {}),
        ]

        if fmt != "TIFF":
            exif_bytes = piexif.dump(exif_dict)
            for _, kwargs in configurations:
                kwargs["exif"] = exif_bytes
            return configurations

        # Without an explicit compression Pillow reuses the source one
        for _, kwargs in configurations:
            compression = kwargs.get("compression", source_info.get("compression"))
            kwargs["tiffinfo"] = containers.to_tiffinfo(
                exif_dict, include_exif_ifd=not containers.uses_libtiff(compression)
            )
            for key in ("dpi", "icc_profile"):
                if key in source_info:
                    kwargs[key] = source_info[key]
        return configurations


# ============================================================================
# SIDECAR STRATEGY
# ============================================================================

def tags_sidecar_path(path: Path) -> Path:
    return path.with_name(path.stem + config.TAGS_SIDECAR_SUFFIX)


def metadata_sidecar_path(path: Path) -> Path:
    return path.with_name(path.stem + config.METADATA_SIDECAR_SUFFIX)


class SidecarStrategy(EncodingStrategy):
    """
    Last resort: stores tags in files next to the image.

    - <stem>.tags: tags joined with ", "
    - <stem>.metadata.json: image path, tags, UTC timestamp, generator and
      format version, pretty-printed

    Only filesystem errors make this strategy fail.

    Both files are written to temporary siblings first and moved into place
    only once both writes succeeded. The .tags file is moved last, so a
    failed call never leaves a .tags file behind for the reader to find.
    """

    name = "sidecar"

    def attempt(self, path: Path, tags: List[str]) -> bool:
        tags_path = tags_sidecar_path(path)
        json_path = metadata_sidecar_path(path)
        metadata = {
            "image_path": str(path),
            "tags": list(tags),
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "generated_by": config.SIDECAR_GENERATOR,
            "version": config.SIDECAR_FORMAT_VERSION,
        }

        staged = [
            (json_path, json.dumps(metadata, indent=2, ensure_ascii=False)),
            (tags_path, config.TAG_SEPARATOR.join(tags)),
        ]
        temp_paths = [target.with_name(target.name + config.SIDECAR_TEMP_SUFFIX) for target, _ in staged]
        try:
            for (_, content), temp_path in zip(staged, temp_paths):
                temp_path.write_text(content, encoding="utf-8")
            for (target, _), temp_path in zip(staged, temp_paths):
                os.replace(temp_path, target)
        finally:
            self._discard(temp_paths)

        self.logger.info(f"Wrote JSON metadata to {json_path.name}")
        self.logger.info(f"Wrote {len(tags)} tags to companion file {tags_path.name}")
        return True

    def _discard(self, temp_paths: List[Path]):
        for temp_path in temp_paths:
            if not temp_path.exists():
                continue
            try:
                temp_path.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to delete temp file {temp_path}: {e}")


def default_strategies(settings: Optional[MetadataSettings] = None, logger: Optional[logging.Logger] = None) -> List[EncodingStrategy]:
    """The standard chain: embedded, then legacy rewrite, then sidecar."""
    return [
        EmbeddedContainerStrategy(settings, logger),
        LegacyPropertyRewriteStrategy(settings, logger),
        SidecarStrategy(settings, logger),
    ]
