"""Extension scanning system.

Concurrent probing of known extensions, version fingerprinting and
vulnerability matching. The orchestrator lives in
``extscout.services.scan.scanner``.
"""

from extscout.services.scan.aggregator import ResultAggregator
from extscout.services.scan.catalog import ExtensionCatalog
from extscout.services.scan.fingerprinter import FingerprintExtractor
from extscout.services.scan.matcher import VulnerabilityMatcher
from extscout.services.scan.prober import ConcurrentProber
from extscout.services.scan.version import VersionComparator, compare

__all__ = [
    "ConcurrentProber",
    "ExtensionCatalog",
    "FingerprintExtractor",
    "ResultAggregator",
    "VersionComparator",
    "VulnerabilityMatcher",
    "compare",
]
