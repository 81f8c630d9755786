"""
Leonardo 图像矢量化机器人 - 后端核心模块

模块结构：
- config/     运行期配置与日志
- models/     数据模型定义
- imaging/    图像下载/位图预处理/描摹
- store/      git 版本化产物存储
- chat/       聊天通道与回复
- pipeline/   提交编排与分发
"""

__version__ = "0.1.0"
