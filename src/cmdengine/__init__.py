"""
cmdengine - Command resolution and streaming execution engine.

Turns free-text commands into permission-checked action invocations:
deterministic pattern rules first, an AI structured-parsing fallback
second, then validation, authorization and dispatch with live progress.

Quick Start:
    from cmdengine.bootstrap import build_engine
    from cmdengine.core import User

    engine = build_engine()
    result = await engine.processor.process(
        "create product named Foo for $10",
        User(id="admin", permissions=frozenset({"*"})),
    )
"""

__version__ = "0.3.0"
