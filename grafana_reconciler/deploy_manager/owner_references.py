"""
This module holds common functionality that the DeployManager implementations
can use to mark the children of a Grafana CR as owned by it, so that they are
garbage collected with the CR
"""

# First Party
import alog

# Local
from ..exceptions import assert_cluster

log = alog.use_channel("OWNRF")


def update_owner_references(deploy_manager, owner_cr: dict, child_obj: dict):
    """Fetch current ownerReferences and merge a reference for the owner CR
    into the child object
    """
    _validate_object_struct(owner_cr)
    _validate_object_struct(child_obj)

    kind = child_obj["kind"]
    api_version = child_obj["apiVersion"]
    name = child_obj["metadata"]["name"]
    namespace = child_obj["metadata"]["namespace"]

    success, content = deploy_manager.get_object_current_state(
        kind=kind, name=name, api_version=api_version, namespace=namespace
    )
    assert_cluster(
        success, f"Failed to fetch current state of {api_version}.{kind}/{name}"
    )

    # Start from whatever is already on the object in the cluster, then from
    # whatever the caller already put on the child
    owner_refs = []
    if content is not None:
        owner_refs = list(content.get("metadata", {}).get("ownerReferences", []))
    for ref in child_obj["metadata"].get("ownerReferences") or []:
        if ref.get("uid") not in [existing.get("uid") for existing in owner_refs]:
            owner_refs.append(ref)
    log.debug3("Current owner refs: %s", owner_refs)

    owner_uid = owner_cr["metadata"].get("uid")
    owner_namespace = owner_cr["metadata"]["namespace"]
    if owner_uid is None:
        log.debug2("Owner has no uid yet; Not adding owner ref")
    elif owner_uid == child_obj["metadata"].get("uid"):
        log.debug2("Owner is same as child; Not adding owner ref")

    # Owner references can not cross namespaces
    elif namespace == owner_namespace and owner_uid not in [
        ref.get("uid") for ref in owner_refs
    ]:
        log.debug2(
            "Adding owner reference for %s.%s/%s", api_version, kind, name
        )
        owner_refs.append(_make_owner_reference(owner_cr))

    child_obj["metadata"]["ownerReferences"] = owner_refs


## Implementation Details ######################################################


def _validate_object_struct(obj: dict):
    """Ensure that the required portions of an object are present (kind,
    apiVersion, metadata.namespace, metadata.name)
    """
    assert "kind" in obj, "Got object without 'kind'"
    assert "apiVersion" in obj, "Got object without 'apiVersion'"
    metadata = obj.get("metadata")
    assert isinstance(metadata, dict), "Got object with non-dict 'metadata'"
    assert "name" in metadata, "Got object without 'metadata.name'"
    assert "namespace" in metadata, "Got object without 'metadata.namespace'"


def _make_owner_reference(owner_cr: dict) -> dict:
    """Make an owner reference for the given CR instance. The Grafana CR is
    the sole manager of its children, so it is marked as the controller.
    """
    metadata = owner_cr.get("metadata", {})
    return {
        "apiVersion": owner_cr.get("apiVersion"),
        "kind": owner_cr.get("kind"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": True,
        # The parent will not be deleted until this object completes its
        # deletion
        "blockOwnerDeletion": True,
    }
