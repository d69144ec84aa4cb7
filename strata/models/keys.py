"""Well-known label, annotation and finalizer keys."""

VERSION = "1.0.0"

DOMAIN = "strata.io"

# Labels
CLUSTER_LABEL = f"{DOMAIN}/pool-cluster"
POOL_INSTANCE_LABEL = f"{DOMAIN}/pool-instance"
POOL_INSTANCE_UID_LABEL = f"{DOMAIN}/pool-instance-uid"
HOSTNAME_LABEL = f"{DOMAIN}/hostname"
VOLUME_LABEL = f"{DOMAIN}/volume"
PERSISTENT_VOLUME_LABEL = f"{DOMAIN}/persistent-volume"
VERSION_LABEL = f"{DOMAIN}/version"
CLONE_LABEL = f"{DOMAIN}/clone"
DISRUPTION_BUDGET_LABEL = f"{DOMAIN}/disruption-budget"
TEMPLATE_HASH_LABEL = f"{DOMAIN}/template-hash"
BLOCK_DEVICE_TAG_LABEL = f"{DOMAIN}/block-device-tag"
APP_LABEL = "app"
POOL_APP = "strata-pool"

# Annotations
POOL_HOSTNAME_ANNOTATION = f"{DOMAIN}/pool-hostname"
SOURCE_VOLUME_ANNOTATION = f"{DOMAIN}/source-volume"
SNAPSHOT_NAME_ANNOTATION = f"{DOMAIN}/snapshot"
CREATED_THROUGH_ANNOTATION = f"{DOMAIN}/created-through"
CREATED_THROUGH_RESTORE = "restore"
RESTORE_VOLUME_ANNOTATION = f"{DOMAIN}/restore-volume"
PREDECESSOR_ANNOTATION = f"{DOMAIN}/predecessor"
EXISTING_POOL_NAME_ANNOTATION = f"{DOMAIN}/existing-pool-name"
RECONCILE_DISABLE_ANNOTATION = f"reconcile.{DOMAIN}/disable"
VOLUME_POLICY_ANNOTATION = f"{DOMAIN}/volume-policy"
ALLOWED_BD_TAGS_ANNOTATION = f"{DOMAIN}/allowed-bd-tags"

# Finalizers
POOL_PROTECTION_FINALIZER = f"{DOMAIN}/pool-protection"
CLUSTER_FINALIZER = f"{DOMAIN}/pool-cluster-protection"
VOLUME_CONFIG_FINALIZER = f"{DOMAIN}/volume-config-protection"
