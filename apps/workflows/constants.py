from pathlib import Path

from bugdb.constants import BUGDB_API_VERSION

WORKFLOWS_API_VERSION = BUGDB_API_VERSION
WORKFLOW_DIR = Path(__file__).resolve().parent / "workflows"
