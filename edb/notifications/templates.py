"""Modèles de messages envoyés aux utilisateurs."""

TEMPLATES = {
    "welcome_cohort": {
        "title": "Bienvenue dans la cohorte {cohort.name}",
        "message": (
            "Bonjour {user.first_name},\n\n"
            "Vous avez été inscrit(e) à la cohorte « {cohort.name} ». "
            "Vous bénéficiez de {months} mois de coaching gratuit.\n\n"
            "L'équipe École de la Bourse"
        ),
    },
    "coach_assigned": {
        "title": "Un coach vous a été assigné",
        "message": (
            "Bonjour {user.first_name},\n\n"
            "{coach.first_name} {coach.last_name} est désormais votre coach. "
            "Vous pouvez le contacter à l'adresse {coach.email}."
        ),
    },
    "coaching_expiry_reminder": {
        "title": "Votre coaching expire dans {days} jours",
        "message": (
            "Bonjour {user.first_name},\n\n"
            "Votre période de coaching se termine le {end_date:%d/%m/%Y}. "
            "Pensez à souscrire un abonnement pour continuer à être accompagné(e)."
        ),
    },
    "subscription_expiring": {
        "title": "Votre abonnement expire bientôt",
        "message": (
            "Bonjour {user.first_name},\n\n"
            "Votre abonnement se termine le {end_date:%d/%m/%Y}. "
            "Renouvelez-le pour conserver l'accès à vos services."
        ),
    },
    "payment_received": {
        "title": "Paiement reçu",
        "message": (
            "Bonjour {user.first_name},\n\n"
            "Nous avons bien reçu votre paiement de {amount:,.0f} {currency}. Merci !"
        ),
    },
}


def render(name: str, **context):
    """Retourne le couple (titre, message) du modèle ``name``."""
    template = TEMPLATES.get(name)
    if template is None:
        raise KeyError(f"Modèle de notification inconnu : {name}")
    return template["title"].format(**context), template["message"].format(**context)


def list_templates():
    return [{"name": name, **template} for name, template in TEMPLATES.items()]
