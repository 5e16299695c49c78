"""cloudkube building blocks, grouped by area:

- `sanitize`, `cli`: safe provider CLI invocation
- `credentials`, `clusters`, `connect`: cloud side (discover, enumerate, connect)
- `kubeconfig`, `clients`: context registry and per-context API clients
- `resources`, `manifests`: typed CRUD and declarative apply
- `pod_exec`: pod logs and exec sessions
- `cluster`: health and capacity summaries
"""

__all__ = [
	"cli",
	"clients",
	"cluster",
	"clusters",
	"connect",
	"credentials",
	"formatting",
	"kubeconfig",
	"manifests",
	"models",
	"pod_exec",
	"resources",
	"sanitize",
]
