"""Static registry of extensions to probe for.

Candidates follow the Joomla! filesystem layout:

- components live in ``components/com_x/`` with their XML manifest under
  ``administrator/components/com_x/``;
- modules live in ``modules/mod_x/`` with ``mod_x.xml`` beside them;
- templates live in ``templates/x/`` with ``templateDetails.xml``.
"""

import logging
from functools import lru_cache
from typing import Iterable

from extscout.services.scan.models import (
    ExtensionCandidate,
    ExtensionKind,
    FingerprintRule,
    RuleSource,
)

logger = logging.getLogger(__name__)


# <version>3.2.1</version> inside an XML manifest
MANIFEST_VERSION_PATTERN = r"<version>\s*([^<\s]+)\s*</version>"

# "Version 3.2.1", "version: 3.2.1" or "v3.2.1 -" at the top of a changelog
CHANGELOG_VERSION_PATTERN = r"(?im)^\s*(?:version[\s:]+|v)(\d+(?:\.\d+)+[\w.-]*)"

# Version strings embedded in index pages, readmes and script URLs
BODY_VERSION_PATTERNS = (
    r"(?i)\bversion[\s:=\"']+v?(\d+(?:\.\d+)+[\w.-]*)",
    r"(?i)[?&]ver(?:sion)?=(\d+(?:\.\d+)+)",
)


COMPONENT_SLUGS: tuple[str, ...] = (
    "com_acymailing",
    "com_akeeba",
    "com_breezingforms",
    "com_community",
    "com_djclassifieds",
    "com_easyblog",
    "com_fabrik",
    "com_hdflvplayer",
    "com_jce",
    "com_jdownloads",
    "com_jevents",
    "com_jnews",
    "com_jomres",
    "com_k2",
    "com_kunena",
    "com_phocagallery",
    "com_rsform",
    "com_sexypolling",
    "com_sobipro",
    "com_virtuemart",
)

MODULE_SLUGS: tuple[str, ...] = (
    "mod_ariimageslider",
    "mod_artuploader",
    "mod_bookmarks",
    "mod_dvfoldercontent",
    "mod_jfancy",
    "mod_jw_allvideos",
    "mod_simplefileuploadv1.3",
    "mod_socialpinboard_menu",
    "mod_vvisit_counter",
)

TEMPLATE_SLUGS: tuple[str, ...] = (
    "beez3",
    "beez_20",
    "bluestork",
    "cassiopeia",
    "ja_purity",
    "protostar",
    "rhuk_milkyway",
)


def _bare_name(slug: str) -> str:
    """Strip the ``com_`` / ``mod_`` prefix from a slug."""
    for prefix in ("com_", "mod_"):
        if slug.startswith(prefix):
            return slug[len(prefix):]
    return slug


def _body_rules() -> tuple[FingerprintRule, ...]:
    return tuple(
        FingerprintRule(source=RuleSource.BODY, pattern=p)
        for p in BODY_VERSION_PATTERNS
    )


def build_candidate(slug: str, kind: ExtensionKind) -> ExtensionCandidate:
    """Build the probe paths and fingerprint rules for one extension.

    Args:
        slug: Extension folder name (``com_k2``, ``mod_jfancy``, ``beez3``)
        kind: Extension kind

    Returns:
        ExtensionCandidate ready to be probed
    """
    name = _bare_name(slug)

    match kind:
        case ExtensionKind.COMPONENT:
            probe_paths = (f"components/{slug}/",)
            rules = (
                FingerprintRule(
                    RuleSource.MANIFEST,
                    MANIFEST_VERSION_PATTERN,
                    f"administrator/components/{slug}/{name}.xml",
                ),
                FingerprintRule(
                    RuleSource.MANIFEST,
                    MANIFEST_VERSION_PATTERN,
                    f"administrator/components/{slug}/{slug}.xml",
                ),
                FingerprintRule(
                    RuleSource.MANIFEST,
                    MANIFEST_VERSION_PATTERN,
                    f"components/{slug}/{name}.xml",
                ),
                FingerprintRule(
                    RuleSource.CHANGELOG,
                    CHANGELOG_VERSION_PATTERN,
                    f"administrator/components/{slug}/changelog.txt",
                ),
            )
        case ExtensionKind.MODULE:
            probe_paths = (f"modules/{slug}/",)
            rules = (
                FingerprintRule(
                    RuleSource.MANIFEST,
                    MANIFEST_VERSION_PATTERN,
                    f"modules/{slug}/{slug}.xml",
                ),
            )
        case ExtensionKind.TEMPLATE:
            probe_paths = (f"templates/{slug}/",)
            rules = (
                FingerprintRule(
                    RuleSource.MANIFEST,
                    MANIFEST_VERSION_PATTERN,
                    f"templates/{slug}/templateDetails.xml",
                ),
            )

    return ExtensionCandidate(
        slug=slug,
        kind=kind,
        probe_paths=probe_paths,
        fingerprint_rules=rules + _body_rules(),
    )


def kind_for_slug(slug: str) -> ExtensionKind:
    """Infer the extension kind from its folder name."""
    if slug.startswith("com_"):
        return ExtensionKind.COMPONENT
    if slug.startswith("mod_"):
        return ExtensionKind.MODULE
    return ExtensionKind.TEMPLATE


class ExtensionCatalog:
    """Read-only table of candidates, ordered by kind then slug."""

    def __init__(self, candidates: Iterable[ExtensionCandidate]):
        unique: dict[tuple[str, str], ExtensionCandidate] = {}
        for candidate in candidates:
            unique.setdefault(candidate.key, candidate)
        self._candidates = tuple(
            sorted(unique.values(), key=lambda c: (c.kind.order, c.slug.casefold(), c.slug))
        )

    @classmethod
    @lru_cache(maxsize=1)
    def default(cls) -> "ExtensionCatalog":
        """The bundled catalog, built once per process."""
        candidates = [
            build_candidate(slug, kind)
            for kind, slugs in (
                (ExtensionKind.COMPONENT, COMPONENT_SLUGS),
                (ExtensionKind.MODULE, MODULE_SLUGS),
                (ExtensionKind.TEMPLATE, TEMPLATE_SLUGS),
            )
            for slug in slugs
        ]
        catalog = cls(candidates)
        logger.debug(f"Extension catalog built with {len(catalog)} candidates")
        return catalog

    @classmethod
    def from_slugs(cls, slugs: Iterable[str]) -> "ExtensionCatalog":
        """Build a catalog from folder names, inferring each kind."""
        return cls(build_candidate(s, kind_for_slug(s)) for s in slugs)

    def extended(self, slugs: Iterable[str]) -> "ExtensionCatalog":
        """Return a new catalog with extra slugs added."""
        extra = ExtensionCatalog.from_slugs(slugs)
        return ExtensionCatalog(self._candidates + extra._candidates)

    def candidates(
        self,
        kinds: Iterable[ExtensionKind] | None = None,
    ) -> tuple[ExtensionCandidate, ...]:
        """Get candidates, optionally restricted to some kinds.

        Args:
            kinds: Kinds to keep (all kinds when None)

        Returns:
            Candidates in stable order
        """
        if kinds is None:
            return self._candidates
        wanted = set(kinds)
        return tuple(c for c in self._candidates if c.kind in wanted)

    def __len__(self) -> int:
        return len(self._candidates)

    def __iter__(self):
        return iter(self._candidates)
