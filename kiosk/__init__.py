"""
Kiosk session controller package

Runtime for a single-purpose kiosk appliance: a fullscreen browser rotating
through configured sites, with inactivity handling, media-aware pausing,
PIN-gated hidden sites and timed password lockout.

Core modules:
- config: JSON kiosk configuration and environment deployment settings
- sites: Visible/hidden site partition and index mapping
- activity: User-input and media activity timestamps
- rotation: One-second master tick and view ownership
- lockout: Password lockout state machine and sentinel files
- hidden: PIN store and hidden-site stack
- dialogs: Mutually exclusive modal dialogs
- keyboard: On-screen keyboard state
- controller: Event loop tying everything together
- devtools / overlay_server / mqtt: Host adapters
"""

__version__ = "0.9.9"
