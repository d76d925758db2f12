from studyplanner.models.todo import Todo

__all__ = ["Todo"]
