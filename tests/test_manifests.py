"""Tests for manifest parsing and the manifest client."""

import pytest

from registry_rootfs.core.reference import parse_image_reference
from registry_rootfs.core.registry_client import RegistryClient
from registry_rootfs.core.types import (
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V1_SIGNED,
    DOCKER_MANIFEST_V2,
    OCI_INDEX,
    OCI_MANIFEST,
    LayerDescriptor,
)
from registry_rootfs.exceptions import ManifestError, UnsupportedManifestError
from registry_rootfs.operations.manifests import parse_manifest_layers, resolve_media_type

CONFIG_DIGEST = "sha256:" + "c" * 64
LAYER_A = "sha256:" + "a" * 64
LAYER_B = "sha256:" + "b" * 64


def image_manifest(media_type=DOCKER_MANIFEST_V2, layers=None):
    manifest = {
        "schemaVersion": 2,
        "config": {
            "mediaType": "application/vnd.docker.container.image.v1+json",
            "size": 1469,
            "digest": CONFIG_DIGEST,
        },
        "layers": layers
        if layers is not None
        else [
            {"mediaType": "layer", "size": 10485760, "digest": LAYER_A},
            {"mediaType": "layer", "size": 5242880, "digest": LAYER_B},
        ],
    }
    if media_type:
        manifest["mediaType"] = media_type
    return manifest


def manifest_list(media_type=DOCKER_MANIFEST_LIST):
    manifest = {
        "schemaVersion": 2,
        "manifests": [
            {
                "mediaType": DOCKER_MANIFEST_V2,
                "size": 528,
                "digest": LAYER_A,
                "platform": {"architecture": "amd64", "os": "linux"},
            },
            {
                "mediaType": DOCKER_MANIFEST_V2,
                "size": 528,
                "digest": LAYER_B,
                "platform": {"architecture": "arm64", "os": "linux"},
            },
        ],
    }
    if media_type:
        manifest["mediaType"] = media_type
    return manifest


class TestParseManifestLayers:
    """Structured manifest parsing."""

    def test_docker_v2_layers_in_order_without_config(self):
        layers = parse_manifest_layers(image_manifest())
        assert layers == [
            LayerDescriptor(digest=LAYER_A, size=10485760, media_type="layer"),
            LayerDescriptor(digest=LAYER_B, size=5242880, media_type="layer"),
        ]
        assert CONFIG_DIGEST not in [layer.digest for layer in layers]

    def test_order_follows_manifest(self):
        manifest = image_manifest()
        manifest["layers"].reverse()
        assert [l.digest for l in parse_manifest_layers(manifest)] == [LAYER_B, LAYER_A]

    def test_oci_manifest_from_content_type(self):
        layers = parse_manifest_layers(image_manifest(media_type=None), OCI_MANIFEST)
        assert [l.digest for l in layers] == [LAYER_A, LAYER_B]

    def test_untyped_schema2_manifest_is_treated_as_oci(self):
        manifest = image_manifest(media_type=None)
        assert resolve_media_type(manifest, "application/json") == OCI_MANIFEST
        assert len(parse_manifest_layers(manifest, "application/json")) == 2

    @pytest.mark.parametrize(
        "document,content_type",
        [
            (manifest_list(), DOCKER_MANIFEST_LIST),
            (manifest_list(), None),
            (manifest_list(OCI_INDEX), OCI_INDEX),
            (manifest_list(media_type=None), OCI_INDEX),
            (manifest_list(media_type=None), "application/json"),
        ],
    )
    def test_manifest_lists_are_unsupported(self, document, content_type):
        """Index documents fail closed even though they carry digests and sizes."""
        with pytest.raises(UnsupportedManifestError) as exc_info:
            parse_manifest_layers(document, content_type)
        assert exc_info.value.media_type in (DOCKER_MANIFEST_LIST, OCI_INDEX)

    def test_schema1_is_unsupported(self):
        document = {
            "schemaVersion": 1,
            "name": "library/alpine",
            "fsLayers": [{"blobSum": LAYER_A}],
        }
        with pytest.raises(UnsupportedManifestError):
            parse_manifest_layers(document, DOCKER_MANIFEST_V1_SIGNED)

    def test_unknown_media_type_is_unsupported(self):
        with pytest.raises(UnsupportedManifestError):
            parse_manifest_layers(image_manifest(media_type="application/x-custom"))

    def test_undeterminable_schema_is_unsupported(self):
        with pytest.raises(UnsupportedManifestError):
            parse_manifest_layers({"schemaVersion": 2}, "text/plain")

    def test_wrong_schema_version_is_unsupported(self):
        manifest = image_manifest()
        manifest["schemaVersion"] = 3
        with pytest.raises(UnsupportedManifestError):
            parse_manifest_layers(manifest)

    @pytest.mark.parametrize(
        "layers",
        [
            [{"size": 1, "digest": "sha256:short"}],
            [{"size": 1, "digest": "sha256:../../" + "a" * 58}],
            [{"size": 1}],
            [{"size": -1, "digest": LAYER_A}],
            [{"size": "12", "digest": LAYER_A}],
            [{"size": True, "digest": LAYER_A}],
            [{"digest": LAYER_A}],
            ["sha256:" + "a" * 64],
            [],
        ],
    )
    def test_malformed_layers(self, layers):
        with pytest.raises(ManifestError) as exc_info:
            parse_manifest_layers(image_manifest(layers=layers))
        assert not isinstance(exc_info.value, UnsupportedManifestError)

    def test_missing_layers_list(self):
        manifest = image_manifest()
        del manifest["layers"]
        with pytest.raises(ManifestError):
            parse_manifest_layers(manifest)

    def test_non_object_document(self):
        with pytest.raises(ManifestError):
            parse_manifest_layers([image_manifest()])


@pytest.mark.asyncio
async def test_get_layers_from_registry(fake_registry, registry_config):
    """The client pins the v2 Accept header and returns parsed layers."""
    manifest = fake_registry.add_image("library/alpine", "3.18", [b"one", b"two"])
    reference = parse_image_reference("library/alpine:3.18", registry_config.registry)

    async with RegistryClient(registry_config) as client:
        layers = await client.get_layers(reference)

    assert [l.digest for l in layers] == [d["digest"] for d in manifest["layers"]]
    assert [l.size for l in layers] == [3, 3]
    assert fake_registry.manifest_requests == ["/v2/library/alpine/manifests/3.18"]
    assert fake_registry.token_requests[0]["scope"] == "repository:library/alpine:pull"


@pytest.mark.asyncio
async def test_get_manifest_refreshes_token_on_401(fake_registry, registry_config):
    fake_registry.add_image("library/alpine", "3.18", [b"one"])
    reference = parse_image_reference("library/alpine:3.18", registry_config.registry)

    async with RegistryClient(registry_config) as client:
        await client.token_provider(reference.repository).current()
        fake_registry.revoke_tokens()
        layers = await client.get_layers(reference)

    assert len(layers) == 1
    assert len(fake_registry.token_requests) == 2
    assert len(fake_registry.manifest_requests) == 2


@pytest.mark.asyncio
async def test_get_manifest_missing_tag(fake_registry, registry_config):
    reference = parse_image_reference("library/alpine:nope", registry_config.registry)

    async with RegistryClient(registry_config) as client:
        with pytest.raises(ManifestError, match="HTTP 404"):
            await client.get_layers(reference)


@pytest.mark.asyncio
async def test_get_manifest_invalid_json(fake_registry, registry_config):
    fake_registry.manifests[("library/alpine", "3.18")] = (b"{broken", DOCKER_MANIFEST_V2)
    reference = parse_image_reference("library/alpine:3.18", registry_config.registry)

    async with RegistryClient(registry_config) as client:
        with pytest.raises(ManifestError, match="Malformed"):
            await client.get_layers(reference)


@pytest.mark.asyncio
async def test_registry_serving_index_is_rejected(fake_registry, registry_config):
    fake_registry.add_manifest("library/alpine", "3.18", manifest_list(), DOCKER_MANIFEST_LIST)
    reference = parse_image_reference("library/alpine:3.18", registry_config.registry)

    async with RegistryClient(registry_config) as client:
        with pytest.raises(UnsupportedManifestError):
            await client.get_layers(reference)
