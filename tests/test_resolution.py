"""PackageVersionService tests"""

from __future__ import annotations

import pytest

from nix_data.core.dependencies import build_cache_manager, build_version_service
from nix_data.domain.errors import FetchError
from nix_data.domain.models import SourceSelector

from conftest import PLAIN_DOC


@pytest.fixture()
def service(config, server):
    return build_version_service(config, build_cache_manager(config, transport=server.transport))


@pytest.fixture()
def declarations(tmp_path):
    main = tmp_path / "configuration.nix"
    main.write_text("{ environment.systemPackages = with pkgs; [ pkgA pkgC ]; }")
    broken = tmp_path / "broken.nix"
    broken.write_text("{ environment.systemPackages = ")
    return main, broken


class TestResolveVersions:

    @pytest.mark.asyncio
    async def test_plain_scenario(self, service, server, declarations):
        server.document = PLAIN_DOC
        main, _ = declarations
        versions = await service.resolve_versions(SourceSelector.LEGACY, [str(main)])
        assert versions == {"pkgA": "1.0"}

    @pytest.mark.asyncio
    async def test_bad_source_does_not_abort(self, service, server, declarations, tmp_path):
        server.document = PLAIN_DOC
        main, broken = declarations
        extra = tmp_path / "extra.nix"
        extra.write_text("{ environment.systemPackages = [ pkgB ]; }")

        versions = await service.resolve_versions(
            SourceSelector.FLAKE, [str(broken), str(main), str(extra)]
        )
        assert versions == {"pkgA": "1.0", "pkgB": "2.0"}

    @pytest.mark.asyncio
    async def test_diagnostics_list_unresolved(self, service, server, declarations):
        server.document = PLAIN_DOC
        main, _ = declarations
        resolution = await service.resolve(SourceSelector.LEGACY, [str(main)])
        assert resolution.unresolved == ["pkgC"]

    @pytest.mark.asyncio
    async def test_defaults_to_configured_paths(self, service, server, config, declarations):
        server.document = PLAIN_DOC
        main, _ = declarations
        config.declaration_paths = [str(main)]
        assert await service.resolve_versions(SourceSelector.LEGACY) == {"pkgA": "1.0"}

    @pytest.mark.asyncio
    async def test_system_source(self, service, tmp_path):
        path = tmp_path / "configuration.nix"
        path.write_text("{ environment.systemPackages = with pkgs; [ firefox hello missing ]; }")
        versions = await service.resolve_versions(SourceSelector.SYSTEM, [str(path)])
        assert versions == {"firefox": "115.0", "hello": "2.12.1"}

    @pytest.mark.asyncio
    async def test_no_declarations_still_ensures_store(self, service, server):
        assert await service.resolve_versions(SourceSelector.SYSTEM, []) == {}
        assert server.calls["index"] == 1

    @pytest.mark.asyncio
    async def test_pipeline_failure_propagates(self, service, server, declarations):
        server.index_status = 404
        main, _ = declarations
        with pytest.raises(FetchError):
            await service.resolve_versions(SourceSelector.LEGACY, [str(main)])

    @pytest.mark.asyncio
    async def test_get_package(self, service):
        details = await service.get_package(SourceSelector.SYSTEM, "firefox")
        assert details.package.version == "115.0"
        assert details.meta.homepage == "https://x"
