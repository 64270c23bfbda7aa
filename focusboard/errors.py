from __future__ import annotations


class FocusboardError(RuntimeError):
  """Base class for domain errors raised below the router layer."""

  detail = "Request could not be processed"

  def __init__(self, detail: str | None = None) -> None:
    super().__init__(detail or self.detail)
    self.detail = detail or self.detail


class MustBeArchivedError(FocusboardError):
  detail = "Record must be archived before it can be deleted"


class ProjectionError(FocusboardError):
  detail = "Invalid projection"
