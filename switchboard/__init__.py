# switchboard package
# Routes a user request to one or more model backends, runs a multi-step plan
# over them and records explainable per-step traces.
#
# Usage:
#     from switchboard.runtime import InMemoryRunStore, RunExecutor, SessionService
#     store = InMemoryRunStore()
#     session = await SessionService(store).create_session("demo")

__version__ = "0.1.0"
