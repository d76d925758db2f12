from studyplanner.db.base_class import Base

# Import all models so Base.metadata knows every table
from studyplanner.models.todo import Todo
