# src/healthmesh/tools/k8s_netinspect.py
"""Parser for k8s-netinspect's JSON report."""

from .json_output import JsonOutputParser


class K8sNetinspectParser(JsonOutputParser):
    """k8s-netinspect -o json prints {"issues": [{level, resource, message}, ...]}."""

    name = "k8s-netinspect"
    severity_field = "level"

    @property
    def records_key(self) -> str:
        return "issues"

    def record_message(self, record: dict) -> str:
        message = super().record_message(record)
        resource = record.get("resource")
        if resource:
            return f"{resource}: {message}"
        return message
