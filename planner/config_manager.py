"""
Configuration Manager for the Proactive Planner.

集中管理系统常量和配置参数。
所有经验值必须显式声明并可配置。

使用方式:
    from planner.config_manager import config
    capacity = config.EVENT_LOG_CAPACITY
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml

from planner.paths import CONFIG_DIR

RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"


@dataclass
class SystemConfig:
    """
    系统运行时常量配置。

    所有值均为经验值，可根据用户实际情况调整。
    """

    # === 容量 ===

    # 事件流保留条数（最新在前，超出即丢弃最旧）
    EVENT_LOG_CAPACITY: int = 1000

    # 干预历史保留条数
    INTERVENTION_HISTORY_CAPACITY: int = 100

    # 复盘记录保留条数
    REFLECTION_CAPACITY: int = 500

    # getRecentEvents 默认返回条数
    RECENT_EVENTS_DEFAULT: int = 50

    # === 健康评估 ===

    # 无产出告警阈值 (分钟)
    # 经验值依据：2 小时无任何完成通常意味着卡住
    IDLE_THRESHOLD_MINUTES: int = 120

    # 傍晚开始检查当日完成率 (小时)
    EVENING_HOUR: int = 18

    # 傍晚完成率告警阈值 (%)
    EVENING_COMPLETION_THRESHOLD: float = 60.0

    # 同一任务 DDL 推迟次数告警阈值
    POSTPONE_ALERT_COUNT: int = 2

    # 逾期任务数达到该值时记 2 分
    OVERDUE_TASKS_SEVERE: int = 3

    # 状态分数阈值：>= RED 为红灯，>= YELLOW 为黄灯
    RED_SCORE: int = 3
    YELLOW_SCORE: int = 1

    # === 风险副本 ===

    # 截止日前多少天开始评估风险
    AT_RISK_WINDOW_DAYS: int = 3

    # 每日所需进度超过该值 (%) 视为风险
    AT_RISK_DAILY_PROGRESS: float = 30.0

    # 每日所需进度超过该值 (%) 视为高风险
    HIGH_RISK_DAILY_PROGRESS: float = 50.0

    # === 趋势与精力 ===

    # 周趋势判定比例
    TREND_IMPROVING_RATIO: float = 1.1
    TREND_DECLINING_RATIO: float = 0.9

    # 精力推断使用的最近复盘条数
    ENERGY_SAMPLE_SIZE: int = 10

    # 一二三方法任务权重（创造 80%, 税收 15%, 维护 5%）
    TASK_WEIGHTS: Optional[Dict[str, float]] = None

    # 未知任务类型权重
    DEFAULT_TASK_WEIGHT: float = 0.10

    # === 监测 ===

    # 监测周期 (分钟)，由外部调度器使用
    MONITOR_INTERVAL_MINUTES: int = 10

    def __post_init__(self):
        if self.TASK_WEIGHTS is None:
            self.TASK_WEIGHTS = {
                "creative": 0.80,
                "tax": 0.15,
                "maintenance": 0.05,
            }


def _load_runtime_config(path: Path = RUNTIME_CONFIG_PATH) -> dict:
    """加载运行时配置覆盖（如果存在）。"""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError):
        return {}


def get_config(path: Path = RUNTIME_CONFIG_PATH) -> SystemConfig:
    """
    获取系统配置实例。

    优先级：runtime.yaml > 默认值
    """
    base = SystemConfig()
    overrides = _load_runtime_config(path)

    for key, value in overrides.items():
        if hasattr(base, key):
            setattr(base, key, value)

    return base


# 全局配置实例（单例模式）
config = get_config()
