"""helmsource: Helm repository index source reconciler.

Fetches the ``index.yaml`` of Helm chart repositories, validates it and
publishes it as a content-addressed artifact:
  - declarative HelmRepository objects with Kubernetes-style status
  - Ready summarized from polarity-tagged conditions
  - atomic, lock-guarded artifact storage with retention GC
  - digest short-circuit so unchanged indexes are never rewritten
"""

__version__ = "0.1.0"
__description__ = "Helm repository index source reconciler"

from helmsource.controller import HelmRepositoryReconciler
from helmsource.cli.app import app as cli

__all__ = ["HelmRepositoryReconciler", "cli", "__version__"]
