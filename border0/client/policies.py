# border0/client/policies.py
"""
Policy endpoints of the Border0 API, limited to what socket policy
attachment needs
"""

import threading
from typing import List, Optional
from urllib.parse import quote

from .errors import Border0Error, NotFoundError, RequestFailedError, is_not_found
from .schemas import Policy, PolicySocketAttachment, PolicySocketAttachments


def _attachments(action: str, ids: List[str]) -> PolicySocketAttachments:
    return PolicySocketAttachments(
        actions=[PolicySocketAttachment(action=action, id=item) for item in ids]
    )


class PolicyService:
    """Policy methods, mixed into APIClient"""

    def policy(self, policy_id: str, cancel: Optional[threading.Event] = None) -> Policy:
        try:
            _, out = self.request("GET", f"/policy/{policy_id}", response_model=Policy, cancel=cancel)
        except RequestFailedError as e:
            if is_not_found(e):
                raise NotFoundError(f"policy [{policy_id}] not found: {e}") from e
            raise
        return out

    def policies(self, cancel: Optional[threading.Event] = None) -> List[Policy]:
        _, out = self.request("GET", "/policies", response_model=List[Policy], cancel=cancel)
        return out or []

    def policies_by_names(self, *names: str, cancel: Optional[threading.Event] = None) -> List[Policy]:
        """
        Look up policies by name, in the order given.

        A single name uses the /policies/find endpoint; several names list all
        policies and filter them.

        Raises:
            Border0Error: no names given, or one of the policies does not exist
        """
        if not names:
            raise Border0Error("no policy names provided")

        if len(names) == 1:
            name = names[0]
            try:
                _, found = self.request(
                    "GET", f"/policies/find?name={quote(name)}", response_model=Policy, cancel=cancel
                )
            except RequestFailedError as e:
                if is_not_found(e):
                    raise NotFoundError(
                        f"policy [{name}] does not exist, please create the policy first"
                    ) from e
                raise
            return [found]

        by_name = {policy.name: policy for policy in self.policies(cancel=cancel)}
        out = []
        for name in names:
            if name not in by_name:
                raise NotFoundError(f"policy [{name}] does not exist, please create the policy first")
            out.append(by_name[name])
        return out

    def attach_policy_to_socket(self, policy_id: str, socket_id: str, cancel: Optional[threading.Event] = None):
        self.request("PUT", f"/policy/{policy_id}/socket", body=_attachments("add", [socket_id]), cancel=cancel)

    def remove_policy_from_socket(self, policy_id: str, socket_id: str, cancel: Optional[threading.Event] = None):
        self.request("PUT", f"/policy/{policy_id}/socket", body=_attachments("remove", [socket_id]), cancel=cancel)

    def attach_policies_to_socket(
        self, policy_ids: List[str], socket_id: str, cancel: Optional[threading.Event] = None
    ):
        self.request("PUT", f"/socket/{socket_id}/policy", body=_attachments("add", policy_ids), cancel=cancel)

    def remove_policies_from_socket(
        self, policy_ids: List[str], socket_id: str, cancel: Optional[threading.Event] = None
    ):
        self.request("PUT", f"/socket/{socket_id}/policy", body=_attachments("remove", policy_ids), cancel=cancel)
