# dnsvard

Building blocks for routing local development hostnames on macOS and Linux.
The package is a library; it has no command of its own.

## What it provides

### Resolver files

Write, check, list and remove per-domain resolver configuration. Every file
written carries the marker `# managed-by: dnsvard`; files without it are never
overwritten or removed (an attempt raises `ResolverError`).

- `dnsvard.macos_resolver.MacResolverManager`: files in `/etc/resolver/<domain>`.
  An unmarked file that already points at the same nameserver and port is
  adopted by rewriting it with the marker.
- `dnsvard.linux_systemd_resolved.SystemdResolvedManager`: drop-ins
  `dnsvard-<domain>.conf` in `/etc/systemd/resolved.conf.d`; systemd-resolved
  is restarted after a change.
- `dnsvard.linux_dnsmasq.DnsmasqManager`: files `dnsvard-<domain>.conf` in
  `/etc/dnsmasq.d`; dnsmasq (or, failing that, NetworkManager) is restarted
  after a change.

All three take a `ResolverSpec(domain, nameserver, port)` from
`dnsvard.linux_systemd_resolved` and offer `ensure`, `matches`, `remove` and
`list_managed`. The directory can be passed to the constructor, and the Linux
managers also accept a `restart` callable, which makes them usable on a
scratch directory.

### Linux backend selection

`dnsvard.linux_backend.detect_capabilities()` looks up `systemctl`,
`resolvectl`, `ip` and `dnsmasq` on `PATH`.
`select_resolver_backend(caps, service_is_active)` picks dnsmasq when it is
installed and dnsmasq or NetworkManager is active, otherwise systemd-resolved,
otherwise none with a reason. The environment variable
`DNSVARD_LINUX_RESOLVER_BACKEND` (`systemd-resolved`, `dnsmasq` or `none`)
forces the choice. `resolver_backend_fix_hints` turns the result into advice.

### launchd agents (macOS)

`dnsvard.macos_launchd` renders and loads the per-user daemon agent
(`dev.dnsvard.daemon`) and the system loopback daemon (`dev.dnsvard.loopback`):
`install_or_update_launch_agent`, `stop_launch_agent`, `uninstall_launch_agent`,
`launch_agent_status`, `install_or_update_loopback_agent`,
`uninstall_loopback_agent`, `loopback_agent_status`, plus the pure helpers
`render_plist`, `render_loopback_plist`, `xml_escape` and
`ensure_executable_binary`. Failures raise `LaunchctlError`.

### Other pieces

- `dnsvard.runtime_leases.LeaseStore`: a JSON store (`runtime-leases.json`) of
  hostnames claimed by processes. `upsert` replaces any other lease sharing a
  hostname; `active` prunes leases whose process is gone.
- `dnsvard.routes.merge`: merges `Entry` records per hostname with precedence
  manual > runtime > docker and reports conflicts as warnings.
- `dnsvard.tcpproxy.TCPProxy`: TCP listeners forwarding to targets, reconciled
  with `set_routes`; `snapshot` lists open listeners, `stop` closes them.
- `dnsvard.ownership`: hand files created under sudo back to the invoking user.
- `dnsvard.netutil.parse_listen_port`, `dnsvard.procutil.running`,
  `dnsvard.textutil.first_line`, `dnsvard.logx.new_logger`: small helpers.

## Examples

```python
from dnsvard.linux_backend import detect_capabilities, select_resolver_backend
from dnsvard.linux_dnsmasq import DnsmasqManager
from dnsvard.linux_systemd_resolved import ResolverSpec, SystemdResolvedManager

backend = select_resolver_backend(detect_capabilities(), None)
print(backend.kind, backend.reason)

spec = ResolverSpec(domain="test", nameserver="127.0.0.1", port="1053")
manager = DnsmasqManager() if backend.kind == "dnsmasq" else SystemdResolvedManager()
if not manager.matches(spec):
    manager.ensure(spec)   # writing under /etc usually needs sudo
```

```python
from ipaddress import ip_address
from dnsvard.routes import Entry, Source, merge

result = merge(
    Entry("api.master.project.test", ip_address("127.90.0.11"), Source.DOCKER),
    Entry("api.master.project.test", ip_address("127.90.0.10"), Source.RUNTIME),
)
print(result.entries, result.warnings)
```

## What it does not do

- There is no command-line program and no daemon; nothing here answers DNS
  queries.
- On Linux there is no installer for a systemd user unit that keeps a daemon
  running; only macOS launchd agents are handled.
- There is no single object that picks the right resolver manager and daemon
  handling for the running system; callers choose between the managers above.

## Installation

```
pip install .
```

## Running the tests

```
pip install .[test]
pytest
```