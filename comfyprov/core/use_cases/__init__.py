"""
Use cases — the operations the CLI exposes.

Each returns a result dataclass with ``to_dict()``; none of them print.
"""
