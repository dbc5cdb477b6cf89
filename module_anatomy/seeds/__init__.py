from .anatomy_seeder import AnatomySeeder, SeedReport

__all__ = ["AnatomySeeder", "SeedReport"]
