"""Built-in card sets and story templates."""

DEFAULT_CARD_SET = 'fibonacci'

CARD_SETS = {
    'fibonacci': {
        'name': 'Fibonacci',
        'cards': ['0', '1', '2', '3', '5', '8', '13', '21', '34', '55', '89', '?'],
        'description': 'Standard Fibonacci sequence for story points',
    },
    'tshirt': {
        'name': 'T-Shirt Sizes',
        'cards': ['XS', 'S', 'M', 'L', 'XL', 'XXL', '?'],
        'description': 'T-shirt sizing for relative estimation',
    },
    'powers': {
        'name': 'Powers of 2',
        'cards': ['1', '2', '4', '8', '16', '32', '64', '?'],
        'description': 'Powers of 2 for technical complexity',
    },
    'linear': {
        'name': 'Linear',
        'cards': ['1', '2', '3', '4', '5', '6', '7', '8', '9', '10', '?'],
        'description': 'Linear scale for simple estimation',
    },
}

TEMPLATES = {
    'user-story': {
        'name': 'User Story',
        'template': 'As a [user] I want [goal] so that [benefit]',
        'icon': '👤',
    },
    'bug': {
        'name': 'Bug Report',
        'template': 'When [action] then [unexpected] but should [expected]',
        'icon': '🐛',
    },
    'tech-debt': {
        'name': 'Technical Task',
        'template': 'Current: [problem]\nProposed: [solution]\nBenefit: [benefit]',
        'icon': '⚙️',
    },
    'spike': {
        'name': 'Research Spike',
        'template': 'Investigation needed: [question]\nSuccess criteria: [criteria]',
        'icon': '🔍',
    },
}


def card_sets():
    return {key: dict(value, cards=list(value['cards'])) for key, value in CARD_SETS.items()}


def templates(overrides=None):
    merged = {key: dict(value) for key, value in TEMPLATES.items()}
    merged.update(overrides or {})
    return merged
