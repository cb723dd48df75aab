import pytest

from dnsvard.linux_systemd_resolved import (
    MANAGED_BY_COMMENT,
    ResolverError,
    ResolverSpec,
    SystemdResolvedManager,
    normalize_domain,
    parse_systemd_resolved_drop_in,
    render_systemd_resolved_drop_in,
)


@pytest.fixture
def restarts():
    return []


@pytest.fixture
def manager(tmp_path, restarts):
    return SystemdResolvedManager(tmp_path / "resolved.conf.d", lambda: restarts.append(1))


SPEC = ResolverSpec(domain="example.test", nameserver="127.0.0.1", port="1053")


def test_render_parse_round_trip():
    raw = render_systemd_resolved_drop_in("example.test", "127.0.0.1", "1053")
    assert raw.startswith(MANAGED_BY_COMMENT + "\n")
    parsed = parse_systemd_resolved_drop_in(raw)
    assert parsed.managed
    assert parsed.domain == "example.test"
    assert parsed.nameserver == "127.0.0.1"
    assert parsed.port == "1053"


def test_render_without_port_parses_empty_port():
    parsed = parse_systemd_resolved_drop_in(
        render_systemd_resolved_drop_in("example.test", " 127.0.0.1 ", " ")
    )
    assert parsed.nameserver == "127.0.0.1"
    assert parsed.port == ""


def test_parse_marker_is_case_insensitive():
    parsed = parse_systemd_resolved_drop_in(MANAGED_BY_COMMENT.upper() + "\n")
    assert parsed.managed


def test_parse_unmanaged_file():
    parsed = parse_systemd_resolved_drop_in("[Resolve]\nDNS=127.0.0.1:1053\n")
    assert not parsed.managed
    assert parsed.nameserver == "127.0.0.1"


def test_normalize_domain():
    assert normalize_domain(" .Example.TEST. ") == "example.test"


def test_ensure_writes_and_matches(manager, restarts):
    manager.ensure(SPEC)
    assert manager.config_path("example.test").read_text() == render_systemd_resolved_drop_in(
        "example.test", "127.0.0.1", "1053"
    )
    assert manager.matches(SPEC)
    assert len(restarts) == 1


def test_ensure_is_idempotent(manager, restarts):
    manager.ensure(SPEC)
    manager.ensure(SPEC)
    assert manager.matches(SPEC) is True
    assert manager.list_managed() == ["example.test"]
    assert len(restarts) == 1


def test_ensure_updates_managed_file(manager, restarts):
    manager.ensure(SPEC)
    updated = ResolverSpec(domain="example.test", nameserver="127.0.0.2", port="1053")
    manager.ensure(updated)
    assert manager.matches(updated)
    assert not manager.matches(SPEC)
    assert len(restarts) == 2


def test_ensure_rejects_unmanaged_conflict(manager, restarts):
    manager.directory.mkdir(parents=True)
    manager.config_path("example.test").write_text("[Resolve]\nDNS=127.0.0.1:1053\n")
    with pytest.raises(ResolverError, match="not managed by dnsvard"):
        manager.ensure(SPEC)
    assert restarts == []


@pytest.mark.parametrize(
    "spec, message",
    [
        (ResolverSpec(domain=" . "), "resolver domain is required"),
        (ResolverSpec(domain="a.test", port="1053"), "resolver nameserver is required"),
        (ResolverSpec(domain="a.test", nameserver="127.0.0.1"), "resolver port is required"),
    ],
)
def test_ensure_requires_fields(manager, spec, message):
    with pytest.raises(ResolverError, match=message):
        manager.ensure(spec)


def test_matches_missing_and_unmanaged(manager):
    assert manager.matches(SPEC) is False
    manager.directory.mkdir(parents=True)
    manager.config_path("example.test").write_text("[Resolve]\nDNS=127.0.0.1:1053\n")
    assert manager.matches(SPEC) is False


def test_remove(manager, restarts):
    manager.ensure(SPEC)
    manager.remove(SPEC)
    assert not manager.config_path("example.test").exists()
    assert len(restarts) == 2


def test_remove_missing_is_noop(manager, restarts):
    manager.remove(SPEC)
    assert manager.matches(SPEC) is False
    assert manager.list_managed() == []
    assert restarts == []


def test_remove_refuses_unmanaged(manager):
    manager.directory.mkdir(parents=True)
    path = manager.config_path("example.test")
    path.write_text("[Resolve]\n")
    with pytest.raises(ResolverError, match="is not managed by dnsvard"):
        manager.remove(SPEC)
    assert path.exists()


def test_list_managed(manager):
    directory = manager.directory
    directory.mkdir(parents=True)
    (directory / "dnsvard-zeta.test.conf").write_text(
        render_systemd_resolved_drop_in("zeta.test", "127.0.0.1", "1053")
    )
    (directory / "dnsvard-alpha.test.conf").write_text(
        render_systemd_resolved_drop_in("alpha.test", "127.0.0.1", "1053")
    )
    (directory / "other.conf").write_text(
        render_systemd_resolved_drop_in("other.test", "127.0.0.1", "1053")
    )
    (directory / "dnsvard-dir.conf").mkdir()
    assert manager.list_managed() == ["alpha.test", "zeta.test"]


def test_list_managed_missing_dir(manager):
    assert manager.list_managed() == []