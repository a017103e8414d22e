"""Test helpers: an in-process fake registry and layer archive builders."""

import hashlib
import io
import json
import tarfile
from datetime import datetime, timezone
from pathlib import Path

from aiohttp import web

from registry_rootfs.core.types import DOCKER_MANIFEST_V2, RegistryConfig

LAYER_MEDIA_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"
CONFIG_MEDIA_TYPE = "application/vnd.docker.container.image.v1+json"


def sha256_digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def make_layer(files: dict[str, bytes], compression: str = "gz") -> bytes:
    """Build a layer archive holding ``files`` in insertion order."""
    mode = f"w:{compression}" if compression else "w"
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=mode) as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mtime = 1700000000
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


def read_members(path: Path) -> list[tuple[str, bytes]]:
    """Return ``(name, content)`` for every regular file in an archive."""
    members = []
    with tarfile.open(path, "r:*") as tar:
        for member in tar.getmembers():
            f = tar.extractfile(member)
            members.append((member.name, f.read() if f else b""))
    return members


class FakeRegistry:
    """Minimal Docker Registry v2 with a token endpoint.

    Tokens are issued as ``token-<n>``; revoked tokens get 401 responses.
    Every request path is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.host: str | None = None
        self.manifests: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.blobs: dict[str, bytes] = {}
        self.requests: list[str] = []
        self.token_requests: list[dict] = []
        self.valid_tokens: set[str] = set()
        self.expires_in = 300
        self.token_status = 200
        self.token_body: bytes | None = None
        self.issued = 0
        self.issued_at: str | None = None

    # -- setup ------------------------------------------------------------

    def add_manifest(
        self, repository: str, tag: str, document: dict, media_type: str = DOCKER_MANIFEST_V2
    ) -> None:
        self.manifests[(repository, tag)] = (json.dumps(document).encode(), media_type)

    def add_image(
        self,
        repository: str,
        tag: str,
        layers: list[bytes],
        media_type: str = DOCKER_MANIFEST_V2,
    ) -> dict:
        """Register an image built from raw layer blobs, returning its manifest."""
        config = json.dumps({"architecture": "amd64", "os": "linux"}).encode()
        config_digest = sha256_digest(config)
        self.blobs[config_digest] = config

        descriptors = []
        for blob in layers:
            digest = sha256_digest(blob)
            self.blobs[digest] = blob
            descriptors.append(
                {"mediaType": LAYER_MEDIA_TYPE, "size": len(blob), "digest": digest}
            )

        manifest = {
            "schemaVersion": 2,
            "mediaType": media_type,
            "config": {
                "mediaType": CONFIG_MEDIA_TYPE,
                "size": len(config),
                "digest": config_digest,
            },
            "layers": descriptors,
        }
        self.add_manifest(repository, tag, manifest, media_type)
        return manifest

    def revoke_tokens(self) -> None:
        self.valid_tokens.clear()

    def config(self, tmp_path: Path, **overrides) -> RegistryConfig:
        values = dict(
            registry=self.host,
            auth_url=f"http://{self.host}/token",
            scheme="http",
            timeout=10,
            temp_root=str(tmp_path / "work"),
            security_log_path=tmp_path / "security.log",
        )
        values.update(overrides)
        return RegistryConfig(**values)

    @property
    def blob_requests(self) -> list[str]:
        return [path for path in self.requests if "/blobs/" in path]

    @property
    def manifest_requests(self) -> list[str]:
        return [path for path in self.requests if "/manifests/" in path]

    # -- handlers ---------------------------------------------------------

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/token", self.handle_token)
        app.router.add_get("/v2/{repo:.+}/manifests/{tag}", self.handle_manifest)
        app.router.add_get("/v2/{repo:.+}/blobs/{digest}", self.handle_blob)
        return app

    async def handle_token(self, request: web.Request) -> web.Response:
        self.token_requests.append(
            {
                "service": request.query.get("service"),
                "scope": request.query.get("scope"),
                "authorization": request.headers.get("Authorization"),
            }
        )
        if self.token_status != 200:
            return web.Response(status=self.token_status)
        if self.token_body is not None:
            return web.Response(body=self.token_body, content_type="application/json")

        self.issued += 1
        token = f"token-{self.issued}"
        self.valid_tokens.add(token)
        return web.json_response(
            {
                "token": token,
                "access_token": token,
                "expires_in": self.expires_in,
                "issued_at": self.issued_at
                or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f000Z"),
            }
        )

    def _authorized(self, request: web.Request) -> bool:
        header = request.headers.get("Authorization", "")
        return header.startswith("Bearer ") and header[7:] in self.valid_tokens

    async def handle_manifest(self, request: web.Request) -> web.Response:
        self.requests.append(request.path)
        if not self._authorized(request):
            return web.Response(status=401)

        key = (request.match_info["repo"], request.match_info["tag"])
        if key not in self.manifests:
            return web.Response(status=404)

        body, media_type = self.manifests[key]
        return web.Response(body=body, content_type=media_type)

    async def handle_blob(self, request: web.Request) -> web.Response:
        self.requests.append(request.path)
        if not self._authorized(request):
            return web.Response(status=401)

        digest = request.match_info["digest"]
        if digest not in self.blobs:
            return web.Response(status=404)
        return web.Response(body=self.blobs[digest])
