from urllib.parse import urlparse

from prometheus_client import Counter, Histogram

request_counter = Counter(
    "ariane_num_req", "Total number of requests", labelnames=["path"]
)
webhook_counter = Counter(
    "ariane_num_webhook", "Total number of webhooks", labelnames=["event"]
)
webhook_skipped_counter = Counter(
    "ariane_num_webhook_skipped",
    "Total number of webhooks ignored without action",
    labelnames=["event", "reason"],
)

error_counter = Counter(
    "ariane_error_counter", "Total number of errors", labelnames=["context"]
)

api_call_count = Counter(
    "ariane_num_api_calls",
    "Total number of GitHub API calls",
    labelnames=["endpoint"],
)

workflow_dispatch_counter = Counter(
    "ariane_num_workflow_dispatch",
    "Number of workflow_dispatch events created",
    labelnames=["workflow"],
)
workflow_skipped_counter = Counter(
    "ariane_num_workflow_skipped",
    "Number of workflows marked as skipped without running",
    labelnames=["workflow"],
)
workflow_satisfied_counter = Counter(
    "ariane_num_workflow_satisfied",
    "Number of workflows not triggered because a previous run already passed",
    labelnames=["workflow"],
)
merge_group_check_counter = Counter(
    "ariane_num_merge_group_checks",
    "Number of required checks reported as successful for merge groups",
    labelnames=["result"],
)

webhook_processing_seconds = Histogram(
    "ariane_webhook_processing_seconds",
    "Time spent handling a webhook event",
    labelnames=["event", "result"],
)

_ENDPOINT_SEGMENTS = frozenset(
    {
        "actions",
        "branches",
        "check-runs",
        "comments",
        "dispatches",
        "files",
        "issues",
        "jobs",
        "memberships",
        "protection",
        "pulls",
        "reactions",
        "required_status_checks",
        "rerun",
        "rerun-failed-jobs",
        "runs",
        "teams",
        "workflows",
    }
)


def _normalize_api_endpoint(endpoint: str) -> str:
    if endpoint == "installation_token":
        return endpoint
    path = urlparse(endpoint).path if "://" in endpoint else endpoint
    path = path.split("{", 1)[0].split("?", 1)[0]
    parts = [p for p in path.split("/") if p]
    if parts[:1] == ["app"] and parts[-1:] == ["access_tokens"]:
        return "installation_token"
    if parts[:1] == ["repos"]:
        parts = parts[3:]
    elif parts[:1] == ["orgs"]:
        parts = parts[2:]
    if parts[:1] == ["contents"]:
        return "contents/xxx"
    kept = [p for p in parts if p in _ENDPOINT_SEGMENTS]
    return "/".join(kept) or "other"


def record_api_call(endpoint: str) -> None:
    api_call_count.labels(endpoint=_normalize_api_endpoint(endpoint)).inc()


def observe_webhook_processing_latency(*, event: str, result: str, seconds: float):
    webhook_processing_seconds.labels(event=event, result=result).observe(seconds)
