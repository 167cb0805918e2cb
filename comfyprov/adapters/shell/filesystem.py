"""
Filesystem adapter — file and directory operations.

Provides a receipt-returning interface for the filesystem changes a
provisioning run makes (directories, generated scripts, the pip
constraints file), so they are logged and dry-run like everything else.
"""

from __future__ import annotations

import logging
from pathlib import Path

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class FilesystemAdapter(Adapter):
    """File and directory operations with receipts.

    Action params:
        operation (str): One of 'write', 'mkdir', 'remove'.
        path (str): Target path (relative to working_dir or absolute).
        content (str): Content to write (for 'write').
        mode (int): Permission bits applied after writing (for 'write').
    """

    _VALID_OPS = {"write", "mkdir", "remove"}

    @property
    def name(self) -> str:
        return "filesystem"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in self._VALID_OPS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(self._VALID_OPS))}"

        if not context.params.get("path"):
            return False, "Missing required param: 'path'"

        if operation == "write" and "content" not in context.params:
            return False, "Missing required param: 'content' for write operation"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        target = Path(context.params["path"])
        if not target.is_absolute():
            target = Path(context.working_dir) / target

        try:
            if operation == "write":
                return self._write(context, target)
            elif operation == "mkdir":
                return self._mkdir(context, target)
            else:
                return self._remove(context, target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": str(target)},
            )

    def _write(self, ctx: ExecutionContext, target: Path) -> Receipt:
        content = ctx.params["content"]
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        mode = ctx.params.get("mode")
        if mode is not None:
            target.chmod(int(mode))
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Written {len(content)} bytes to {target}",
            metadata={"path": str(target), "size": len(content), "mode": mode},
        )

    def _mkdir(self, ctx: ExecutionContext, target: Path) -> Receipt:
        target.mkdir(parents=True, exist_ok=True)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Directory ready: {target}",
            metadata={"path": str(target)},
        )

    def _remove(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.exists() and not target.is_symlink():
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"Nothing to remove at {target}",
            )
        target.unlink()
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Removed {target}",
            metadata={"path": str(target)},
        )
