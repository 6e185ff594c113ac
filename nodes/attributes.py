"""Attribute names read off nodes by the runtime."""

COMMAND = "command"
COMMAND_FOR = "commandfor"
ARIA_CONTROLS = "aria-controls"
DATA_TARGET = "data-target"

# Source-node chaining surface
AND_THEN = "data-and-then"
AFTER_SUCCESS = "data-after-success"
AFTER_ERROR = "data-after-error"
AFTER_COMPLETE = "data-after-complete"
THEN_TARGET = "data-then-target"
STATE = "data-state"

# Continuation nodes
CONTINUATION_TAG = "and-then"
CONDITION = "data-condition"
DELAY = "data-delay"
ONCE = "data-once"

# Synthetic pipeline source
PIPELINE_STEP_TAG = "pipeline-step"

# Reflected state
ARIA_EXPANDED = "aria-expanded"
ARIA_PRESSED = "aria-pressed"
