from abc import ABC, abstractmethod

class Translator(ABC):
    @abstractmethod
    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        """
        Translate one <ph>-tagged string. Raises TranslationError on failure;
        implementations must bound each call with a timeout.
        """
        ...
