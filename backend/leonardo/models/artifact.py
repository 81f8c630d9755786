"""
产物模型 - 描摹产物与存储引用
"""

from __future__ import annotations

import hashlib

from pydantic import BaseModel, ConfigDict


class TracedArtifact(BaseModel):
    """描摹产物（SVG，或转换后的 VectorDrawable XML）"""
    submission_id: str
    content: bytes
    extension: str = "svg"
    byte_size: int
    sha256: str

    @classmethod
    def from_svg(cls, submission_id: str, svg: str | bytes, extension: str = "svg") -> TracedArtifact:
        content = svg.encode("utf-8") if isinstance(svg, str) else svg
        return cls(
            submission_id=submission_id,
            content=content,
            extension=extension,
            byte_size=len(content),
            sha256=hashlib.sha256(content).hexdigest(),
        )

    @property
    def file_name(self) -> str:
        return f"{self.submission_id}.{self.extension}"


class StoreReference(BaseModel):
    """存储引用 - 提交ID + 仓库内相对路径，不可变"""
    model_config = ConfigDict(frozen=True)

    commit_id: str
    path: str

    @property
    def short_id(self) -> str:
        return self.commit_id[:7]

    def render(self, link_template: str | None = None) -> str:
        """
        渲染为用户可读的链接/标识

        link_template 支持 {commit} {short} {path} 占位符，例如：
        https://github.com/org/icons/blob/{commit}/{path}
        """
        if link_template:
            return link_template.format(commit=self.commit_id, short=self.short_id, path=self.path)
        return f"{self.path} @ {self.short_id}"
