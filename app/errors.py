class AppError(Exception):
    """Базовая ошибка приложения."""


class InvalidInputError(AppError):
    """Входные данные не прошли проверку."""


class NotFoundError(AppError):
    """Запрошенная сущность не найдена."""


class SubmissionNotFoundError(NotFoundError):
    """Заявка не найдена."""


class EntryNotFoundError(NotFoundError):
    """Опубликованная запись не найдена."""


class PermissionDeniedError(AppError):
    """Недостаточно прав или пользователь не владелец заявки."""


class InvalidTransitionError(AppError):
    """Переход статуса заявки запрещен (заявка уже в терминальном статусе)."""


class StorageError(AppError):
    """Базовая ошибка слоя хранения данных."""


class StorageUnavailableError(StorageError):
    """Слой хранения недоступен или вернул неожиданную ошибку."""


class VisionServiceError(AppError):
    """Сервис анализа изображений недоступен или вернул ошибку."""
