from __future__ import annotations

import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field

ChartType = Literal["bar", "line", "area", "pie", "scatter", "radar"]
FilterOperator = Literal["equals", "not_equals", "contains", "starts_with", "gt", "lt", "gte", "lte"]
MissingPolicy = Literal["none", "drop", "impute_mean", "impute_zero"]
DetailLevel = Literal["brief", "standard", "deep"]

CHART_TYPES: tuple[str, ...] = ("bar", "line", "area", "pie", "scatter", "radar")
FILTER_OPERATORS: tuple[str, ...] = ("equals", "not_equals", "contains", "starts_with", "gt", "lt", "gte", "lte")
MISSING_POLICIES: tuple[str, ...] = ("none", "drop", "impute_mean", "impute_zero")


class ChartConfig(BaseModel):
    type: ChartType
    title: str
    x_axis: str
    y_axis: str
    category: str | None = None
    additional_keys: list[str] = Field(default_factory=list)
    data: list[dict[str, Any]] = Field(default_factory=list)

    def referenced_columns(self) -> list[str]:
        columns = [self.x_axis, self.y_axis, *self.additional_keys]
        if self.category:
            columns.append(self.category)
        return list(dict.fromkeys(columns))


class FilterRule(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    column: str
    operator: FilterOperator
    value: str


class DataCleaningOptions(BaseModel):
    handle_missing: MissingPolicy = "none"
    remove_duplicates: bool = False
    standardize_text: bool = False
    # False limits impute_zero to columns holding at least one number.
    impute_text_with_zero: bool = True


class AnalysisFeatures(BaseModel):
    trend_prediction: bool = True
    anomaly_detection: bool = False
    correlation_analysis: bool = True
    strategic_forecasting: bool = False


class AnalysisConfig(BaseModel):
    detail_level: DetailLevel = "standard"
    features: AnalysisFeatures = Field(default_factory=AnalysisFeatures)


class Statistic(BaseModel):
    label: str
    value: str | float | int


class PerformancePulse(BaseModel):
    strengths: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    summary: str
    insights: list[str] = Field(default_factory=list)
    statistics: list[Statistic] = Field(default_factory=list)
    performance_pulse: PerformancePulse = Field(default_factory=PerformancePulse)
    suggested_charts: list[ChartConfig] = Field(default_factory=list)


class Report(BaseModel):
    id: str
    name: str
    date: str
    analysis: AnalysisResult
    data: list[dict[str, Any]] = Field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date,
            "summary": self.analysis.summary,
            "rows": len(self.data),
            "charts": len(self.analysis.suggested_charts),
        }
