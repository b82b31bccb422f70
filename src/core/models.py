MATCH_PENDING = 'pending'
MATCH_IN_PROGRESS = 'in_progress'
MATCH_COMPLETED = 'completed'
MATCH_BYE = 'bye'
MATCH_STATUSES = (MATCH_PENDING, MATCH_IN_PROGRESS, MATCH_COMPLETED, MATCH_BYE)

TOURNAMENT_DRAFT = 'draft'
TOURNAMENT_ACTIVE = 'active'
TOURNAMENT_COMPLETED = 'completed'

SPORT_TYPES = [
    'Cricket',
    'Football',
    'Badminton',
    'Table Tennis',
    'Chess',
    'Volleyball',
    'Basketball',
    'Tennis',
]


class Player:
    def __init__(self, id, name, team_name='', email=None, phone=None, is_active=True, tournament_id=None):
        self.id = id
        self.name = name
        self.team_name = team_name
        self.email = email
        self.phone = phone
        self.is_active = is_active
        self.tournament_id = tournament_id

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'team_name': self.team_name,
            'email': self.email,
            'phone': self.phone,
            'is_active': self.is_active,
            'tournament_id': self.tournament_id,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            team_name=data.get('team_name', ''),
            email=data.get('email'),
            phone=data.get('phone'),
            is_active=data.get('is_active', True),
            tournament_id=data.get('tournament_id'),
        )

    def __repr__(self):
        return f"Player(id={self.id}, name={self.name}, team_name={self.team_name})"


class Match:
    def __init__(self, tournament_id, round_number, match_number, player1_id, player2_id=None,
                 winner_id=None, status=MATCH_PENDING, notes=None, completed_at=None):
        self.tournament_id = tournament_id
        self.round_number = round_number
        self.match_number = match_number
        self.player1_id = player1_id
        self.player2_id = player2_id  # None only for a bye
        self.winner_id = winner_id
        self.status = status
        self.notes = notes
        self.completed_at = completed_at

    @property
    def is_bye(self):
        return self.status == MATCH_BYE

    @property
    def key(self):
        """Uniqueness key of a match within the store."""
        return (self.tournament_id, self.round_number, self.match_number)

    def to_dict(self):
        return {
            'tournament_id': self.tournament_id,
            'round_number': self.round_number,
            'match_number': self.match_number,
            'player1_id': self.player1_id,
            'player2_id': self.player2_id,
            'winner_id': self.winner_id,
            'status': self.status,
            'notes': self.notes,
            'completed_at': self.completed_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            tournament_id=data.get('tournament_id'),
            round_number=int(data['round_number']),
            match_number=int(data['match_number']),
            player1_id=data.get('player1_id'),
            player2_id=data.get('player2_id'),
            winner_id=data.get('winner_id'),
            status=data.get('status', MATCH_PENDING),
            notes=data.get('notes'),
            completed_at=data.get('completed_at'),
        )

    def __eq__(self, other):
        if not isinstance(other, Match):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"Match(round={self.round_number}, match={self.match_number}, "
                f"players=({self.player1_id}, {self.player2_id}), winner={self.winner_id}, status={self.status})")


class Tournament:
    def __init__(self, slug, name, sport_type=None, description='', status=TOURNAMENT_DRAFT,
                 current_round=0, total_rounds=0, created=None, created_by=None, champion_id=None):
        self.slug = slug
        self.name = name
        self.sport_type = sport_type
        self.description = description
        self.status = status
        self.current_round = current_round
        self.total_rounds = total_rounds
        self.created = created
        self.created_by = created_by
        self.champion_id = champion_id

    def to_dict(self):
        return {
            'slug': self.slug,
            'name': self.name,
            'sport_type': self.sport_type,
            'description': self.description,
            'status': self.status,
            'current_round': self.current_round,
            'total_rounds': self.total_rounds,
            'created': self.created,
            'created_by': self.created_by,
            'champion_id': self.champion_id,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            slug=data['slug'],
            name=data.get('name', data['slug']),
            sport_type=data.get('sport_type'),
            description=data.get('description', ''),
            status=data.get('status', TOURNAMENT_DRAFT),
            current_round=data.get('current_round', 0),
            total_rounds=data.get('total_rounds', 0),
            created=data.get('created'),
            created_by=data.get('created_by'),
            champion_id=data.get('champion_id'),
        )

    def __repr__(self):
        return f"Tournament(slug={self.slug}, status={self.status}, round={self.current_round}/{self.total_rounds})"
