"""Fixed texts: assistant policy, safety reply and offline canned answers."""

CLOSING_PHRASE = "para jugar en jugarenchile.com"

SYSTEM_POLICY = """Eres asistente IA de JugarEnChile.com (casino online chileno operado por Fantasy Games SPA).

REGLAS:
- Respuestas cortas (máx 3 párrafos)
- Tono profesional, empático y responsable
- Si no tienes información específica, sé honesto y ofrece contactar con soporte humano
- Si detectas ludopatía o juego problemático, prioriza la ayuda y los recursos de apoyo
- Nunca promuevas el juego excesivo o irresponsable
- Termina SIEMPRE con: "para jugar en jugarenchile.com"

DATOS CHILE:
- Salario mínimo: $460.000 CLP
- Edad mínima para jugar: 18 años
- Métodos de pago populares: Transferencias, WebPay, Mercado Pago, Khipu"""

SUPPORT_HELPLINE = "600 360 7777 (SENDA Chile)"

SUPPORT_MESSAGE = f"""Entiendo tu preocupación y es muy valiente de tu parte buscar ayuda. El juego debe ser siempre entretenimiento, nunca una fuente de problemas.

Te recomiendo:
1. Contactar la Línea de Ayuda: {SUPPORT_HELPLINE}
2. Visitar Jugadores Anónimos Chile
3. Usar nuestra opción de autoexclusión en tu cuenta
4. Hablar con alguien de confianza

Recuerda: pedir ayuda es un signo de fortaleza. Estamos aquí para apoyarte, no solo para jugar.

¿Te gustaría que te ayude a configurar límites en tu cuenta o activar la autoexclusión?"""

GENERIC_RESPONSE = (
    "Gracias por tu consulta. En JugarEnChile.com ofrecemos una experiencia de casino online segura y "
    "responsable. Contamos con los mejores juegos, bonos atractivos y soporte 24/7 " + CLOSING_PHRASE
)

# (all keywords required, answer); first match wins.
CANNED_RESPONSES: tuple[tuple[tuple[tuple[str, ...], ...], str], ...] = (
    (
        (("juego",), ("popular", "mejor")),
        "Los juegos más populares en JugarEnChile.com son Book of Dead, Starburst, Sweet Bonanza, "
        "Gates of Olympus y Wolf Gold. Todos ofrecen excelentes premios y entretenimiento garantizado "
        + CLOSING_PHRASE,
    ),
    (
        (("deposit", "dinero", "pago"),),
        "Puedes depositar mediante transferencia bancaria, tarjetas Visa/Mastercard, Mercado Pago, Khipu "
        "o WebPay. Los depósitos son instantáneos y seguros " + CLOSING_PHRASE,
    ),
    (
        (("retir", "sacar"),),
        "Los retiros se procesan en 24-48 horas hábiles después de la verificación. "
        "El monto mínimo es $10.000 CLP " + CLOSING_PHRASE,
    ),
    (
        (("bono", "promoc"),),
        "Ofrecemos bonos de bienvenida para nuevos jugadores, giros gratis y cashback. "
        "Consulta términos y condiciones " + CLOSING_PHRASE,
    ),
    (
        (("segur", "confia"),),
        "JugarEnChile.com utiliza encriptación SSL de 256 bits, la misma tecnología que los bancos. "
        "Somos una plataforma 100% segura y legal " + CLOSING_PHRASE,
    ),
)


def build_system_prompt(context: str = "") -> str:
    if not context:
        return SYSTEM_POLICY
    return f"{SYSTEM_POLICY}\n\nCONTEXTO:\n{context}\n\nUsa este contexto para responder de manera precisa y específica."


def canned_response(user_message: str) -> str:
    """Keyword-selected answer used offline and when the model call fails."""
    lowered = (user_message or "").lower()
    for groups, answer in CANNED_RESPONSES:
        # Every group needs at least one of its keywords.
        if all(any(keyword in lowered for keyword in group) for group in groups):
            return answer
    return GENERIC_RESPONSE
