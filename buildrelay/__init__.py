"""buildrelay: deterministic build identity and artifact promotion.

Takes a semantic base version through two decoupled pipelines:

  - Pipeline 1 compiles, tests and packages the application, bundles the
    container recipe and publishes ``{artifactId}-{full}.jar`` and
    ``docker-context-{full}.zip`` to the artifact store.
  - Pipeline 2 starts from the handoff payload alone, downloads the bundle,
    builds the image and pushes it as ``{full}`` and ``latest``.

Every run is recorded in a hash-chained SQLite ledger.
"""

__version__ = "0.1.0"
__description__ = "Deterministic build identity and artifact promotion pipeline"

from buildrelay.core.controller import PromotionController
from buildrelay.models.versioning import VersionIdentifier
from buildrelay.cli.app import app as cli

__all__ = ["PromotionController", "VersionIdentifier", "cli", "__version__"]
