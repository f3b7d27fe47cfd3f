"""
API server package — HTTP interface for parents (provisioning, policy edits)
and children (policy view, transaction validation).
"""
