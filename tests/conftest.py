"""Shared fixtures: an in-memory remote instance behind httpx.MockTransport."""

import io
import itertools
import json
import zipfile
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from unitflow.config import TargetConfig
from unitflow.remote.client import RemoteTarget

HOSTNAME = "test.example.com"
CLIENT_ID = "test-client"

DATA_PREFIX = "/s/-/dw/data/v25_6/"
WEBDAV_PREFIX = "/on/demandware.servlet/webdav/Sites/"
PREFERENCES = "global_preferences/preference_groups/unitflow/development"
FEATURE_OBJECTS = "custom_objects/UnitflowFeature/"
FEATURE_SEARCH = "custom_objects_search/UnitflowFeature"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FakeRemote:
    """In-memory instance: preferences, feature objects, jobs, WebDAV files."""

    def __init__(self):
        self.preferences = None  # None until the bootstrap archive is imported
        self.features_provisioned = False
        self.objects = {}
        self.files = {}
        self.executions = {}
        self.imported = []
        self.unzipped = []
        self.failing_imports = set()
        self.forbidden = set()
        self.requests = []
        self.code_versions = [{"id": "v1", "active": True}, {"id": "v2", "active": False}]
        self.activations = []
        self._ids = itertools.count(1)

    # -- helpers for tests -------------------------------------------------

    def forbid(self, method: str, route: str):
        self.forbidden.add((method, route))

    def provision(self, applied=(), version=7, clients=(CLIENT_ID,), variables=None):
        """Put the instance in an already-bootstrapped state."""
        self.preferences = {
            "c_unitflowDataVersion": version,
            "c_unitflowMigrations": ",".join(applied),
            "c_unitflowBootstrappedClientIDs": json.dumps(
                {c: {"version": version} for c in clients}
            ),
            "c_unitflowVars": json.dumps(variables or {}),
        }

    def provision_features(self, version=3, clients=(CLIENT_ID,)):
        if self.preferences is None:
            self.preferences = {}
        self.features_provisioned = True
        self.preferences["c_unitflowFeaturesVersion"] = version
        self.preferences["c_unitflowFeaturesBootstrappedClientIDs"] = json.dumps(
            {c: {"version": version} for c in clients}
        )

    @property
    def applied(self):
        migrations = (self.preferences or {}).get("c_unitflowMigrations") or ""
        return [m for m in migrations.split(",") if m]

    def run_logs(self):
        return {k: v for k, v in self.files.items() if k.startswith("Impex/log/unitflow/")}

    def target(self, **kwargs) -> RemoteTarget:
        config = TargetConfig(hostname=HOSTNAME, client_id=CLIENT_ID, access_token="token", **kwargs)
        return RemoteTarget(config, transport=httpx.MockTransport(self.handler), poll_interval=0)

    # -- transport ---------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if path.startswith(DATA_PREFIX):
            route = path[len(DATA_PREFIX):]
            if (request.method, route) in self.forbidden:
                return _fault(403, "Forbidden")
            return self._data(request, route)
        if path.startswith(WEBDAV_PREFIX):
            route = path[len(WEBDAV_PREFIX):]
            if (request.method, route) in self.forbidden:
                return httpx.Response(403)
            return self._webdav(request, route)
        return httpx.Response(404)

    def _data(self, request, route):
        method = request.method
        body = json.loads(request.content) if request.content else {}

        if route == PREFERENCES:
            if self.preferences is None:
                return _fault(404, "Preference group not found")
            if method == "PATCH":
                self.preferences.update(body)
            return httpx.Response(200, json=self.preferences)

        if route.startswith(FEATURE_OBJECTS):
            return self._feature_object(method, route[len(FEATURE_OBJECTS):], body)

        if route == FEATURE_SEARCH:
            if not self.features_provisioned:
                return _fault(404, "Unknown object type")
            hits = list(self.objects.values())
            return httpx.Response(200, json={"count": len(hits), "hits": hits})

        if route.startswith("jobs/"):
            return self._job(method, route.split("/"), body)

        if route == "code_versions":
            return httpx.Response(200, json={"data": self.code_versions})
        if route.startswith("code_versions/") and method == "PATCH":
            version_id = route.split("/", 1)[1]
            for version in self.code_versions:
                version["active"] = version["id"] == version_id
            self.activations.append(version_id)
            return httpx.Response(200, json={"id": version_id, "active": True})

        return _fault(404, f"No route {route}")

    def _feature_object(self, method, name, body):
        if not self.features_provisioned:
            return _fault(404, "Unknown object type")
        existing = self.objects.get(name)
        if method == "GET":
            return httpx.Response(200, json=existing) if existing else _fault(404, "Not found")
        if method == "PUT":
            self.objects[name] = {
                "key_value_string": name,
                "creation_date": _now(),
                "last_modified": _now(),
                **body,
            }
            return httpx.Response(201, json=self.objects[name])
        if method == "PATCH":
            if existing is None:
                return _fault(404, "Not found")
            existing.update(body, last_modified=_now())
            return httpx.Response(200, json=existing)
        if method == "DELETE":
            if self.objects.pop(name, None) is None:
                return _fault(404, "Not found")
            return httpx.Response(204)
        return _fault(405, "Method not allowed")

    def _job(self, method, parts, body):
        job_id = parts[1]
        if method == "POST" and len(parts) == 3:
            execution_id = str(next(self._ids))
            status = "OK"
            if job_id == "sfcc-site-archive-import":
                status = self._import(body["file_name"])
            elif job_id == "sfcc-site-archive-export":
                self.files[f"Impex/src/instance/{body['export_file']}"] = _zip(
                    {"export/data.txt": json.dumps(body["data_units"])}
                )
            self.executions[execution_id] = status
            return httpx.Response(202, json={"id": execution_id, "execution_status": "pending"})
        if method == "GET" and len(parts) == 4:
            code = self.executions[parts[3]]
            return httpx.Response(
                200,
                json={
                    "id": parts[3],
                    "execution_status": "finished",
                    "exit_status": {"code": code, "message": "" if code == "OK" else "Import failed"},
                },
            )
        return _fault(404, "Unknown job route")

    def _import(self, file_name):
        data = self.files.get(f"Impex/src/instance/{file_name}")
        if data is None:
            return "ERROR"
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = zf.namelist()
            root = names[0].split("/")[0] if names else file_name
            self.imported.append(root)
            if root in self.failing_imports:
                return "ERROR"
            for name in names:
                if name.endswith("meta/system-objecttype-extensions.xml") and self.preferences is None:
                    self.preferences = {}
                if name.endswith("meta/features.xml"):
                    if self.preferences is None:
                        self.preferences = {}
                    self.features_provisioned = True
        return "OK"

    def _webdav(self, request, route):
        method = request.method
        if method == "PUT":
            self.files[route] = request.content
            return httpx.Response(201)
        if method == "GET":
            if route not in self.files:
                return httpx.Response(404)
            return httpx.Response(200, content=self.files[route])
        if method == "DELETE":
            removed = self.files.pop(route, None)
            return httpx.Response(204 if removed is not None else 404)
        if method == "POST":
            form = parse_qs(request.content.decode())
            if form.get("method") == ["UNZIP"] and route in self.files:
                self.unzipped.append(route)
                return httpx.Response(201)
            return httpx.Response(404)
        return httpx.Response(405)


def _fault(status, message):
    return httpx.Response(status, json={"fault": {"type": "Fault", "message": message}})


def _zip(files):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


@pytest.fixture
def remote():
    return FakeRemote()
