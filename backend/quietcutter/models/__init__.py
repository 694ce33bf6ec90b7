from quietcutter.models.projects import Project
from quietcutter.models.files import ProjectFile, FileStatus, FileType, OutputFormat
from quietcutter.models.users import User
from quietcutter.models.jobs import Job

__all__ = [
    "Project",
    "ProjectFile",
    "FileStatus",
    "FileType",
    "OutputFormat",
    "User",
    "Job",
]
