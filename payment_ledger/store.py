import copy
import threading
from typing import Any, Optional, Protocol


GENERAL_PAYMENTS = "payments"
SITES = "sites"
WORKERS = "workers"
MATERIALS = "materials"
ATTENDANCE = "attendance"

LEDGER_COLLECTIONS = (GENERAL_PAYMENTS, SITES, WORKERS, MATERIALS)

DEMO_PROJECT_ID = "demo-project"


class DocumentStore(Protocol):
    def get_project(self, project_id: str) -> Optional[dict]:
        ...

    def fetch(self, project_id: str, path: str) -> Optional[dict]:
        ...


class InMemoryProjectStore:
    """Hierarchical project documents keyed by ``projects/<id>/<path>``.

    ``fetch`` returns a deep copy of the value at ``path`` or ``None`` when
    nothing is stored there, mirroring a realtime-database ``get``.
    """

    def __init__(self, seed: bool = True):
        self.projects: dict[str, dict] = {}
        self._lock = threading.Lock()
        if seed:
            self._seed_data()

    def put_project(self, project_id: str, document: dict) -> None:
        with self._lock:
            self.projects[project_id] = copy.deepcopy(document)

    def get_project(self, project_id: str) -> Optional[dict]:
        with self._lock:
            project = self.projects.get(project_id)
            if project is None:
                return None
            return {"id": project_id, "name": project.get("name")}

    def fetch(self, project_id: str, path: str) -> Optional[dict]:
        with self._lock:
            node: Any = self.projects.get(project_id)
            for part in path.strip("/").split("/"):
                if not isinstance(node, dict):
                    return None
                node = node.get(part)
            return copy.deepcopy(node) if node is not None else None

    def _seed_data(self):
        self.projects[DEMO_PROJECT_ID] = {
            "name": "Riverside Residency",
            GENERAL_PAYMENTS: {
                "gp1": {"amount": 250000, "date": "2024-01-10", "mode": "Bank Transfer",
                        "status": "Received", "notes": "Mobilisation advance"},
                "gp2": {"amount": "150000", "date": "15/02/2024", "mode": "Cheque",
                        "status": "Pending"},
            },
            SITES: {
                "site-a": {
                    "name": "Site A",
                    "payments": {
                        "sp1": {"amount": 80000, "date": "2024-02-01", "mode": "Cash",
                                "status": "Received", "notes": "Foundation work"},
                        "sp2": {"amount": 45000.5, "date": "05/03/2024", "mode": "UPI",
                                "status": "Pending"},
                    },
                },
                "site-b": {"name": "Site B"},
            },
            WORKERS: {
                "w1": {
                    "name": "Ramesh Kumar", "type": "Mason", "wage": 900,
                    "payments": {
                        "wp1": {"amount": 5400, "date": "2024-03-09", "mode": "Cash",
                                "status": "Received", "notes": "Week 10"},
                    },
                },
                "w2": {"name": "Suresh Patil", "type": "Helper", "wage": "650"},
            },
            MATERIALS: {
                "m1": {
                    "name": "Cement (OPC 53)",
                    "payments": {
                        "mp1": {"amount": 36000, "date": "2024-02-20", "mode": "Bank Transfer",
                                "status": "Received"},
                        "mp2": {"amount": 12000, "date": "2024-03-12", "mode": "Credit",
                                "status": "Pending", "notes": "Balance on delivery"},
                    },
                },
            },
            ATTENDANCE: {
                "20240309": {
                    "w1": {"present": True, "wage": 900},
                    "w2": {"present": True, "wage": 650},
                },
            },
        }
