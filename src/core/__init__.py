"""
Доменный слой (Core Domain).
Геометрия, проверка токенов и модели продавцов.
"""
