"""reelcompose -- timeline composition from independently produced content.

Reconcile clip selections, narration, music, cutaway footage and overlays
into one renderable timeline whose durations and time-indexed tracks are
internally consistent. Requests are declared in YAML manifests; the output
is a plain nested record a renderer can trust without re-validating.
"""
