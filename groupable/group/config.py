import logging
LOGGER = logging.getLogger(__name__)

from dotenv import load_dotenv
import os
import importlib
import threading

load_dotenv()

from typing import Type, TypeVar
T = TypeVar("T")

class Config:

    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        self.groups = None
        self._groups_lock = threading.Lock()
        LOGGER.info("Created Config instance")

    @classmethod
    def config(cls) -> 'Config':
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = Config()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            if cls._instance is not None and cls._instance.groups is not None:
                cls._instance.groups.metadata.close()
            cls._instance = None

    def get_class_from_env(self, env_var: str, default: str, expected_type: Type[T]) -> Type[T]:
        path = os.getenv(env_var, default)
        LOGGER.info(f"Using provider class: {path}")

        try:
            module_path, class_name = path.rsplit(".", 1)
            module = importlib.import_module(module_path)
            cls = getattr(module, class_name)
            LOGGER.info(f"Loaded provider class: {cls}")

            if not issubclass(cls, expected_type):
                raise TypeError(f"Class {path} is not a subclass of {expected_type.__name__}")

            return cls
        except (ImportError, AttributeError, TypeError) as e:
            LOGGER.error(f"Failed to load or validate class {path}: {e}")
            raise

    def get_metadata_db_url(self):
        return os.getenv('GROUPS_DB_URL', 'sqlite:////tmp/.groups.db')

    def get_local_number(self) -> str:
        if not os.environ.get('LOCAL_NUMBER'):
            raise EnvironmentError("LOCAL_NUMBER environment variable not set.")
        return os.environ['LOCAL_NUMBER']

    def get_groups(self):
        """
        Have to lazy init the store here to avoid circular imports.
        """
        if self.groups is None:
            with self._groups_lock:
                if self.groups is None:
                    from groupable.group.metadata import Metadata
                    from groupable.group.directory import Directory
                    from groupable.group.groups import Groups

                    metadata = Metadata(self.get_metadata_db_url())
                    directory_class = self.get_class_from_env(
                        'GROUPS_DIRECTORY_CLASS', 'groupable.group.directory.MetadataDirectory', Directory)
                    self.groups = Groups(metadata, directory_class(metadata), local_number=self.get_local_number)
        return self.groups
