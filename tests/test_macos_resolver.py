import pytest

from dnsvard.linux_systemd_resolved import ResolverError, ResolverSpec
from dnsvard.macos_resolver import (
    MacResolverManager,
    ParsedResolver,
    parse_resolver_file,
    render_resolver,
)


def test_list_managed_resolvers(tmp_path):
    manager = MacResolverManager(tmp_path)
    manager.ensure(ResolverSpec(domain="cs", nameserver="127.0.0.1", port="1053"))
    assert manager.list_managed() == ["cs"]


def test_remove_refuses_unmanaged_file(tmp_path):
    path = tmp_path / "test"
    path.write_text("nameserver 127.0.0.1\nport 1053\n")
    with pytest.raises(ResolverError, match="not managed by dnsvard"):
        MacResolverManager(tmp_path).remove(ResolverSpec(domain="test"))
    assert path.exists()


def test_render_and_parse_round_trip():
    spec = ResolverSpec(domain=" cs ", nameserver="127.0.0.1", port="1053")
    text = render_resolver(spec)
    assert text == "# managed-by: dnsvard\n# domain: cs\nnameserver 127.0.0.1\nport 1053\n"
    assert parse_resolver_file(text) == ParsedResolver(True, "127.0.0.1", "1053")


def test_parse_skips_malformed_lines():
    parsed = parse_resolver_file("# comment\nnameserver a b\nPORT 53\n")
    assert parsed == ParsedResolver(False, "", "53")


def test_ensure_rejects_missing_fields(tmp_path):
    manager = MacResolverManager(tmp_path)
    with pytest.raises(ResolverError, match="domain is required"):
        manager.ensure(ResolverSpec(domain=" ", nameserver="127.0.0.1", port="53"))
    with pytest.raises(ResolverError, match="nameserver is required"):
        manager.ensure(ResolverSpec(domain="cs", port="53"))
    with pytest.raises(ResolverError, match="port is required"):
        manager.ensure(ResolverSpec(domain="cs", nameserver="127.0.0.1"))


def test_ensure_adopts_identical_unmanaged_file(tmp_path):
    path = tmp_path / "cs"
    path.write_text("nameserver 127.0.0.1\nport 1053\n")
    spec = ResolverSpec(domain="cs", nameserver="127.0.0.1", port="1053")
    manager = MacResolverManager(tmp_path)
    manager.ensure(spec)
    assert path.read_text() == render_resolver(spec)
    assert manager.matches(spec) is True


def test_ensure_rejects_conflicting_unmanaged_file(tmp_path):
    path = tmp_path / "cs"
    path.write_text("nameserver 10.0.0.1\nport 53\n")
    with pytest.raises(ResolverError, match="resolver file conflict"):
        MacResolverManager(tmp_path).ensure(
            ResolverSpec(domain="cs", nameserver="127.0.0.1", port="1053")
        )
    assert path.read_text() == "nameserver 10.0.0.1\nport 53\n"


def test_ensure_updates_managed_file(tmp_path):
    manager = MacResolverManager(tmp_path)
    manager.ensure(ResolverSpec(domain="cs", nameserver="127.0.0.1", port="1053"))
    new = ResolverSpec(domain="cs", nameserver="127.0.0.2", port="2053")
    manager.ensure(new)
    assert (tmp_path / "cs").read_text() == render_resolver(new)


def test_ensure_creates_directory(tmp_path):
    target = tmp_path / "resolver"
    MacResolverManager(target).ensure(ResolverSpec(domain="cs", nameserver="127.0.0.1", port="53"))
    assert (target / "cs").is_file()


def test_matches(tmp_path):
    manager = MacResolverManager(tmp_path)
    spec = ResolverSpec(domain="cs", nameserver="127.0.0.1", port="1053")
    assert manager.matches(spec) is False
    manager.ensure(spec)
    assert manager.matches(spec) is True
    assert manager.matches(ResolverSpec(domain="cs", nameserver="127.0.0.1", port="53")) is False


def test_matches_unmanaged_is_false(tmp_path):
    (tmp_path / "cs").write_text("nameserver 127.0.0.1\nport 1053\n")
    spec = ResolverSpec(domain="cs", nameserver="127.0.0.1", port="1053")
    assert MacResolverManager(tmp_path).matches(spec) is False


def test_remove_managed_and_missing(tmp_path):
    manager = MacResolverManager(tmp_path)
    spec = ResolverSpec(domain="cs", nameserver="127.0.0.1", port="1053")
    manager.ensure(spec)
    manager.remove(spec)
    assert not (tmp_path / "cs").exists()
    manager.remove(spec)
    assert manager.list_managed() == []


def test_remove_requires_domain(tmp_path):
    with pytest.raises(ResolverError, match="domain is required"):
        MacResolverManager(tmp_path).remove(ResolverSpec(domain=""))


def test_list_managed_skips_unmanaged_and_dirs(tmp_path):
    manager = MacResolverManager(tmp_path)
    manager.ensure(ResolverSpec(domain="zeta", nameserver="127.0.0.1", port="53"))
    manager.ensure(ResolverSpec(domain="alpha", nameserver="127.0.0.1", port="53"))
    (tmp_path / "other").write_text("nameserver 1.1.1.1\n")
    (tmp_path / "subdir").mkdir()
    assert manager.list_managed() == ["alpha", "zeta"]


def test_list_managed_missing_dir(tmp_path):
    assert MacResolverManager(tmp_path / "absent").list_managed() == []