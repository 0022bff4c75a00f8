"""Fixed reply texts sent over the chat channel."""

from __future__ import annotations

COMMAND_LIST = (
    "Comandos disponibles:\n"
    '• "pausar" - pausar suscripción\n'
    '• "reanudar" - reanudar suscripción\n'
    '• "actualizame" - resumen ahora'
)

SUBSCRIBED = (
    "✅ ¡Listo! Recibirás un resumen de noticias todos los días a las 6:00 AM.\n\n" + COMMAND_LIST
)
SUBSCRIBE_FAILED = "❌ Error al suscribir. Intenta nuevamente."

PAUSED = '⏸️ Suscripción pausada. Usa "reanudar" para volver a activarla.'
RESUMED = "▶️ ¡Suscripción reactivada! Volverás a recibir noticias a las 6:00 AM."
NOT_SUBSCRIBED = '❌ No estás suscripto. Usa "suscribir" primero.'

UNSUBSCRIBED = '👋 Te diste de baja correctamente. Si querés volver, escribí "suscribir".'
NOT_REGISTERED = "❌ No estás registrado en el sistema."

NEWS_UNAVAILABLE = "❌ Error al obtener noticias. Intenta nuevamente."
UNKNOWN_COMMAND = '❓ Comando no reconocido. Usa "ayuda" para ver comandos disponibles.'

HELP = """*RSM - Comandos disponibles*

• *actualizame* - Resumen de noticias ahora
• *suscribir* - Noticias diarias a las 6 AM
• *pausar* - Pausar envíos
• *reanudar* - Reactivar suscripción
• *baja* - Eliminar suscripción
• *ayuda* - Ver este mensaje"""

# Sent after the web form
WEB_SUBSCRIBED = (
    "¡Hola! Te suscribiste a *RSM* 📰\n\n"
    "Recibirás un resumen de noticias todos los días a las 6:00 AM.\n\n"
    "Comandos disponibles:\n"
    '• "actualizame" - Te envío las últimas noticias\n'
    '• "pausar" - Pausar envíos\n'
    '• "baja" - Cancelar suscripción'
)
WEB_UNSUBSCRIBED = (
    'Te diste de baja de *RSM*.\n\nSi querés volver, escribí "suscribir" o visitá nuestra web.'
)
