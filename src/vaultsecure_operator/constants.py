"""Constants for the Vault Secure Operator."""

# API Group
API_GROUP = "vaultsecure.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_VAULT_ACCESS_KEY = "VaultAccessKey"
PLURAL_VAULT_ACCESS_KEY = "vaultaccesskeys"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = "vaultsecure-operator"
CONTROLLER_NAME = "vaultsecure-operator"

# Import identifier separator ("<enginePath>:<principalName>")
IDENTIFIER_SEPARATOR = ":"

# Rotation retry defaults (absorbs IAM read-after-write lag)
DEFAULT_ROTATION_RETRY_ATTEMPTS = 5
DEFAULT_ROTATION_RETRY_DELAY_SECONDS = 3.0

# Lifecycle phases
PHASE_ABSENT = "Absent"
PHASE_PROVISIONING = "Provisioning"
PHASE_OWNED = "Owned"
PHASE_DRIFTED = "Drifted"
PHASE_GONE = "Gone"

# Condition Types
COND_READY = "Ready"
COND_DRIFTED = "Drifted"
COND_CREATION_FAILED = "CreationFailed"
COND_ROTATION_FAILED = "RotationFailed"
COND_CHANGE_REJECTED = "ChangeRejected"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_SUCCEEDED = "ValidateSucceeded"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_ACCESS_KEY_CREATED = "AccessKeyCreated"
EVENT_REASON_ACCESS_KEY_IMPORTED = "AccessKeyImported"
EVENT_REASON_ACCESS_KEY_DELETED = "AccessKeyDeleted"
EVENT_REASON_ACCESS_KEY_GONE = "AccessKeyGone"
EVENT_REASON_DRIFT_DETECTED = "DriftDetected"
EVENT_REASON_REPLACEMENT_STARTED = "ReplacementStarted"
