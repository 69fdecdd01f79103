# run.py
"""
Point d'entrée pour l'exécution de l'application Flask.

Ce script importe la factory `create_app` depuis le paquet `planipeda` et lance
le serveur de développement intégré de Flask.
"""

import os

from planipeda import create_app

app = create_app()

if __name__ == "__main__":
    # PORT est fourni par l'hébergeur ; 8080 par défaut.
    port = int(os.environ.get("PORT", 8080))
    debug_mode = os.environ.get("FLASK_DEBUG", "False").lower() == "true"

    app.run(host="0.0.0.0", port=port, debug=debug_mode)
