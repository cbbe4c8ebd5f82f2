"""devrun: local development orchestrator.

Brings up the two local backends a service needs during development:
 - the function emulator, which executes handlers as if deployed
 - the event gateway, which routes HTTP and custom events to functions

Backends that are already listening are reused; missing binaries are
installed; missing processes are spawned and watched until their output
signals readiness. Functions are then deployed to the emulator and
registered with the gateway, and the run lasts as long as the spawned
processes do.
"""
