"""Exception hierarchy shared by the pipeline and its collaborators."""


class StudyTreeError(Exception):
    """Base class for all application errors."""


class ConfigurationError(StudyTreeError):
    """A required setting (usually the completion API key) is missing."""


class ServiceError(StudyTreeError):
    """The completion service could not be reached or returned an error status."""


class ExternalProcessError(StudyTreeError):
    """ffmpeg, ffprobe, yt-dlp or the speech-to-text engine failed.

    Fatal to the lecture being processed.
    """


class AIResponseError(StudyTreeError):
    """A completion was empty, too short or could not be parsed.

    Always recovered where it is raised; it never reaches the pipeline.
    """


class InvalidStageTransition(StudyTreeError):
    """The pipeline tried to move a lecture backwards or out of a terminal stage."""


class PresentationError(StudyTreeError):
    """No slide deck could be built for a lecture."""
