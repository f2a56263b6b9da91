from codequest.api.routes import challenges, game

__all__ = ["challenges", "game"]
