"""Core logic layer.

Modules:
    state: StateStore folding server messages into snapshots.
    config: ConfigManager wrapping QSettings.
    discovery: ServerDiscovery over mDNS.
    worker: SnapcastWorker bridging the client to Qt signals.

Nothing is imported here so that the API layer can depend on the state
store without pulling in Qt.
"""
