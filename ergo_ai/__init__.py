"""ergo.

A command interceptor: when a typed command is not installed, ergo asks a
generator for a small Deno TypeScript program that does what was asked,
caches it, and runs it in a permission-restricted sandbox after the user has
approved the capabilities it declares.

High-level architecture
-----------------------

- ``ergo_ai.command_core``:

  - Permission grammar and allow-list policy.
  - Artifact records, the per-mode JSON generation cache.
  - Generator backends (deterministic, remote, template).
  - Resolver, approval gate, sandbox executor and corrective loop.

- ``ergo_ai.core``:

  - Settings (environment and ``$ERGO_HOME/config.toml``) and logging.

- ``ergo_ai.cli``: the ``ergo`` command line entry point.

Typical workflow
----------------

1. ``ergo hello world``: ``hello`` is not on PATH and not cached, so it is
   generated, cached, approved and run.
2. ``ergo hello again``: served from the cache, no generation.
3. ``ergo --nope "greet in French"``: the last command is regenerated as a
   new revision and must be approved again before it runs.
"""

__version__ = "0.1.0"
