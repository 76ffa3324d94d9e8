"""
配置文件事务

先把所有修改写入目标目录下的临时文件, commit时再依次rename到位并执行校验;
任何一步失败都会按相反顺序撤销已应用的修改, 原有文件保持不变。
"""
import os
import tempfile
from typing import Awaitable, Callable, Iterable, List, Optional

import aiofiles

from trojan_deploy.core.logger import setup_logger

logger = setup_logger(__name__)

Validator = Callable[[], Awaitable[object]]


class _Snapshot:
    """记录路径在修改前的状态"""

    def __init__(self, path: str):
        self.path = path
        self.link_target: Optional[str] = None
        self.content: Optional[bytes] = None
        self.mode: Optional[int] = None
        if os.path.islink(path):
            self.link_target = os.readlink(path)
        elif os.path.isfile(path):
            with open(path, "rb") as f:
                self.content = f.read()
            self.mode = os.stat(path).st_mode & 0o7777

    def restore(self):
        if os.path.lexists(self.path):
            os.remove(self.path)
        if self.link_target is not None:
            os.symlink(self.link_target, self.path)
        elif self.content is not None:
            fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(self.path) or ".")
            with os.fdopen(fd, "wb") as f:
                f.write(self.content)
            os.chmod(tmp_path, self.mode)
            os.replace(tmp_path, self.path)


class _Operation:
    def __init__(self, path: str):
        self.path = path
        self.snapshot: Optional[_Snapshot] = None

    def apply(self):
        self.snapshot = _Snapshot(self.path)
        self._apply()

    def _apply(self):
        raise NotImplementedError

    def undo(self):
        if self.snapshot is not None:
            self.snapshot.restore()

    def discard(self):
        pass


class _WriteOp(_Operation):
    def __init__(self, path: str, tmp_path: str):
        super().__init__(path)
        self.tmp_path = tmp_path

    def _apply(self):
        os.replace(self.tmp_path, self.path)

    def discard(self):
        if os.path.exists(self.tmp_path):
            os.remove(self.tmp_path)


class _SymlinkOp(_Operation):
    def __init__(self, target: str, link_path: str):
        super().__init__(link_path)
        self.target = target

    def _apply(self):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        if os.path.lexists(self.path):
            os.remove(self.path)
        os.symlink(self.target, self.path)


class _UnlinkOp(_Operation):
    def _apply(self):
        if os.path.lexists(self.path):
            os.remove(self.path)


class ConfigTransaction:
    """配置文件两阶段提交"""

    def __init__(self):
        self._staged: List[_Operation] = []
        self._applied: List[_Operation] = []
        self.committed = False

    async def stage_write(self, path: str, content: str, mode: int = 0o644) -> str:
        """写入临时文件, 返回临时文件路径"""
        directory = os.path.dirname(path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=directory,
            prefix=f".{os.path.basename(path)}.",
            suffix=".tmp"
        )
        os.close(fd)
        self._staged.append(_WriteOp(path, tmp_path))
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(content)
        os.chmod(tmp_path, mode)
        return tmp_path

    def stage_symlink(self, target: str, link_path: str):
        self._staged.append(_SymlinkOp(target, link_path))

    def stage_unlink(self, path: str):
        self._staged.append(_UnlinkOp(path))

    async def commit(self, validators: Iterable[Validator] = ()):
        """应用所有暂存的修改并执行校验"""
        try:
            for op in self._staged:
                # 先登记, apply中途失败时也能从快照恢复
                self._applied.append(op)
                op.apply()
            for validate in validators:
                await validate()
        except BaseException:
            logger.error("配置提交失败, 正在回滚")
            self.rollback()
            raise
        self.committed = True
        logger.info(f"已提交 {len(self._applied)} 项配置修改")

    def rollback(self):
        """撤销已应用的修改并删除临时文件"""
        for op in reversed(self._applied):
            try:
                op.undo()
            except OSError as e:
                logger.error(f"恢复 {op.path} 失败: {str(e)}")
        self._applied = []
        self.committed = False
        self.discard()

    def discard(self):
        for op in self._staged:
            op.discard()

    async def __aenter__(self) -> "ConfigTransaction":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.discard()
            return False
        if self._applied:
            logger.warning("提交后出现错误, 回滚配置修改")
            self.rollback()
        else:
            self.discard()
        return False
